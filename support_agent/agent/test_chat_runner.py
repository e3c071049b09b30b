import json

import pytest

from support_agent.agent.chat_runner import SupportChatRunner
from support_agent.agent.models import Message, MessageRole
from support_agent.agent.prompts import SUPPORT_AGENT_PROMPT
from support_agent.errors import BackendError
from support_agent.retrieval.pipeline import RetrievalPipeline
from support_agent.streaming.events import DONE_FRAME
from support_agent.tools import build_tool_dispatcher
from support_agent.workflows.models import RunStatus

HITS = [{"_id": "doc-1", "_score": 0.9, "fields": {"text": "Doors open at 7am.", "title": "Hours"}}]


def content_chunk(text):
    return f"data: {json.dumps({'choices': [{'index': 0, 'delta': {'content': text}}]})}\n\n"


def tool_call_chunk(call_id, name, arguments):
    delta = {
        "tool_calls": [
            {"index": 0, "id": call_id, "function": {"name": name, "arguments": json.dumps(arguments)}}
        ]
    }
    return f"data: {json.dumps({'choices': [{'index': 0, 'delta': delta}]})}\n\n"


def frames_of(output):
    return [
        json.loads(frame[len("data: "):])
        for frame in output
        if frame.startswith("data: {") and '"type"' in frame
    ]


@pytest.fixture
def make_runner(engine, search_client_factory):
    def factory(llm, max_iterations=5):
        pipeline = RetrievalPipeline(search_client_factory(hits=HITS))
        return SupportChatRunner(
            llm, build_tool_dispatcher(engine, pipeline), max_iterations=max_iterations
        )

    return factory


async def collect(runner, messages, **kwargs):
    return [chunk async for chunk in runner.stream_chat(messages, **kwargs)]


USER_QUESTION = [Message(role=MessageRole.USER, content="When do you open?")]


def test_history_puts_prompts_first(make_runner, llm_factory):
    runner = make_runner(llm_factory())
    history = runner.build_history(
        [Message(role=MessageRole.SYSTEM, content="ignored"), *USER_QUESTION],
        auto_search_context="[Document: Hours, ID: doc-1, Score: 0.900]\nDoors open at 7am.",
    )

    assert history[0].content == SUPPORT_AGENT_PROMPT
    assert history[1].role == MessageRole.SYSTEM
    assert "Doors open at 7am." in history[1].content
    assert [m.role for m in history[2:]] == [MessageRole.USER]


@pytest.mark.asyncio
async def test_content_is_relayed_verbatim(make_runner, llm_factory):
    chunks = [content_chunk("We open "), content_chunk("at 7am."), "data: [DONE]\n\n"]
    llm = llm_factory(streams=[chunks])

    output = await collect(make_runner(llm), USER_QUESTION)

    assert output == [chunks[0], chunks[1], DONE_FRAME]
    assert len(llm.requests) == 1
    assert [tool.function.name for tool in llm.requests[0].tools][0] == "vector_search"


@pytest.mark.asyncio
async def test_tool_results_are_fed_back_to_the_model(make_runner, llm_factory):
    llm = llm_factory(
        streams=[
            [tool_call_chunk("call_1", "vector_search", {"query": "opening hours"}), "data: [DONE]\n\n"],
            [content_chunk("We open at 7am."), "data: [DONE]\n\n"],
        ]
    )

    output = await collect(make_runner(llm), USER_QUESTION)

    events = frames_of(output)
    assert events[0]["type"] == "tool-result"
    assert events[0]["toolCallId"] == "call_1"
    assert events[0]["toolName"] == "vector_search"
    assert events[0]["result"]["resultCount"] == 1
    assert output[-2] == content_chunk("We open at 7am.")
    assert output[-1] == DONE_FRAME

    second = llm.requests[1].messages
    assert second[-2].role == MessageRole.ASSISTANT
    assert second[-2].tool_calls[0].function.name == "vector_search"
    assert second[-1].role == MessageRole.TOOL
    assert second[-1].tool_call_id == "call_1"
    assert json.loads(second[-1].content)["hasResults"] is True


@pytest.mark.asyncio
async def test_suspending_tool_ends_the_turn(make_runner, llm_factory, engine):
    arguments = {
        "question": "Which campus?",
        "options": [{"id": "north", "label": "North"}, {"id": "south", "label": "South"}],
    }
    llm = llm_factory(
        streams=[[tool_call_chunk("call_mc", "multiple_choice", arguments), "data: [DONE]\n\n"]]
    )

    output = await collect(make_runner(llm), USER_QUESTION)

    assert len(llm.requests) == 1
    assert output[-1] == DONE_FRAME
    result = frames_of(output)[0]["result"]
    assert result["suspended"] is True
    assert result["suspendPayload"]["question"] == "Which campus?"
    run = engine.get_run(result["workflowRunId"])
    assert run.status == RunStatus.SUSPENDED


@pytest.mark.asyncio
async def test_invalid_tool_arguments_are_reported_to_the_model(make_runner, llm_factory):
    llm = llm_factory(
        streams=[
            [tool_call_chunk("call_x", "escalate", {"question": "help"}), "data: [DONE]\n\n"],
            [content_chunk("Sorry."), "data: [DONE]\n\n"],
        ]
    )

    output = await collect(make_runner(llm), USER_QUESTION)

    result = frames_of(output)[0]["result"]
    assert result["error"].startswith("Invalid arguments:")
    assert len(llm.requests) == 2


@pytest.mark.asyncio
async def test_max_iterations_bounds_the_loop(make_runner, llm_factory):
    looping = [tool_call_chunk("call_v", "vector_search", {"query": "hours"}), "data: [DONE]\n\n"]
    llm = llm_factory(streams=[list(looping) for _ in range(5)])

    output = await collect(make_runner(llm, max_iterations=2), USER_QUESTION)

    assert len(llm.requests) == 2
    assert len(frames_of(output)) == 2
    assert output[-1] == DONE_FRAME


@pytest.mark.asyncio
async def test_backend_failure_becomes_error_frame(make_runner, llm_factory):
    llm = llm_factory(error=BackendError("LLM API error: 503 unavailable", backend="llm"))

    output = await collect(make_runner(llm), USER_QUESTION)

    assert frames_of(output) == [{"type": "error", "error": "LLM API error: 503 unavailable"}]
    assert output[-1] == DONE_FRAME
