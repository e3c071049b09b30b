import json

import pytest

from support_agent.agent.chunks import ChunkReader, parse_sse_chunk


def sse(payload):
    return f"data: {json.dumps(payload)}\n\n"


def test_parse_content_delta():
    chunk = sse({"choices": [{"index": 0, "delta": {"content": "Hi"}, "finish_reason": None}]})

    parsed = parse_sse_chunk(chunk)

    assert parsed.content == "Hi"
    assert parsed.raw == chunk
    assert parsed.tool_calls is None
    assert not parsed.is_done


def test_parse_done_marker():
    assert parse_sse_chunk("data: [DONE]\n\n").is_done
    assert parse_sse_chunk("[DONE]").is_done


def test_parse_non_json_is_raw_content():
    parsed = parse_sse_chunk("data: plain words\n\n")

    assert parsed.content == "plain words"
    assert parsed.parsed == {}


def test_parse_full_message_choice():
    chunk = sse(
        {
            "choices": [
                {"index": 0, "message": {"role": "assistant", "content": "Done"}, "finish_reason": "stop"}
            ]
        }
    )

    parsed = parse_sse_chunk(chunk)

    assert parsed.content == "Done"
    assert parsed.finish_reason == "stop"


async def _source(chunks):
    for chunk in chunks:
        yield chunk


@pytest.mark.asyncio
async def test_reader_accumulates_tool_call_fragments():
    chunks = [
        sse({"choices": [{"delta": {"tool_calls": [{"index": 0, "id": "call_a", "function": {"name": "vector_", "arguments": ""}}]}}]}),
        sse({"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"name": "search", "arguments": '{"query":'}}]}}]}),
        sse({"choices": [{"delta": {"tool_calls": [{"index": 1, "id": "call_b", "function": {"name": "escalate", "arguments": "{}"}}]}}]}),
        sse({"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": ' "fees"}'}}]}}]}),
        "data: [DONE]\n\n".encode("utf-8"),
    ]
    reader = ChunkReader(_source(chunks))

    parsed = [chunk async for chunk in reader.as_parsed()]

    assert parsed[-1].is_done
    assert reader.tool_calls() == [
        {"index": 0, "id": "call_a", "name": "vector_search", "arguments": '{"query": "fees"}'},
        {"index": 1, "id": "call_b", "name": "escalate", "arguments": "{}"},
    ]


@pytest.mark.asyncio
async def test_reader_ignores_nameless_tool_calls():
    chunks = [sse({"choices": [{"delta": {"tool_calls": [{"index": 0, "function": {"arguments": "{}"}}]}}]})]
    reader = ChunkReader(_source(chunks))

    async for _ in reader.as_parsed():
        pass

    assert reader.tool_calls() == []
