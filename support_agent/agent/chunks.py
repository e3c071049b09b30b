"""
Helpers for reading OpenAI-style SSE chunks streamed by the LLM client.

``ChunkReader`` parses each chunk into a ``ParsedChunk`` while accumulating
streamed tool-call deltas, so the chat runner can relay the raw chunk and
still learn which tools the model asked for.
"""

import json
import logging
from typing import Any, AsyncGenerator, Dict, List, Optional

logger = logging.getLogger("uvicorn.error")


class ParsedChunk:
    """A parsed chunk with unified access to common fields."""

    def __init__(
        self,
        raw: str,
        parsed: Optional[dict] = None,
        content: Optional[str] = None,
        tool_calls: Optional[list] = None,
        finish_reason: Optional[str] = None,
        is_done: bool = False,
    ):
        self.raw = raw
        self.parsed = parsed or {}
        self.content = content
        self.tool_calls = tool_calls
        self.finish_reason = finish_reason
        self.is_done = is_done

    def __repr__(self):
        return f"ParsedChunk(content={self.content!r}, is_done={self.is_done}, tool_calls={len(self.tool_calls or [])})"


def parse_sse_chunk(chunk_str: str) -> ParsedChunk:
    stripped = chunk_str.strip()

    if stripped in ("data: [DONE]", "[DONE]"):
        return ParsedChunk(raw=chunk_str, is_done=True)

    json_str = stripped[6:].strip() if stripped.startswith("data: ") else stripped
    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError:
        # Not JSON, treat the payload as raw content
        return ParsedChunk(raw=chunk_str, content=json_str)

    if not isinstance(parsed, dict):
        return ParsedChunk(raw=chunk_str, parsed={"value": parsed})

    content = None
    tool_calls = None
    finish_reason = None
    choices = parsed.get("choices") or []
    if choices:
        choice = choices[0]
        delta = choice.get("delta") or {}
        message = choice.get("message") or {}
        content = delta.get("content") or message.get("content")
        tool_calls = delta.get("tool_calls") or message.get("tool_calls")
        finish_reason = choice.get("finish_reason")

    return ParsedChunk(
        raw=chunk_str,
        parsed=parsed,
        content=content,
        tool_calls=tool_calls,
        finish_reason=finish_reason,
    )


class ChunkReader:
    """
    Reads a stream of SSE chunks, yielding ``ParsedChunk`` objects and
    accumulating tool-call deltas as ``{index: {id, name, arguments}}``.
    """

    def __init__(self, source: AsyncGenerator[Any, None]):
        self.source = source
        self._tool_call_chunks: Dict[int, dict] = {}

    def _accumulate_tool_calls(self, tool_calls: Optional[list]) -> None:
        for tc in tool_calls or []:
            tc_index = tc.get("index", 0)
            entry = self._tool_call_chunks.setdefault(
                tc_index, {"index": tc_index, "id": "", "name": "", "arguments": ""}
            )
            # ID is set once, name and arguments arrive in fragments
            if tc.get("id"):
                entry["id"] = tc["id"]
            tc_func = tc.get("function") or {}
            if tc_func.get("name"):
                entry["name"] += tc_func["name"]
            if tc_func.get("arguments"):
                entry["arguments"] += tc_func["arguments"]

    def tool_calls(self) -> List[dict]:
        """Accumulated tool calls that have a name, ordered by index."""
        return [
            self._tool_call_chunks[index]
            for index in sorted(self._tool_call_chunks)
            if self._tool_call_chunks[index]["name"]
        ]

    async def as_parsed(self) -> AsyncGenerator[ParsedChunk, None]:
        async for raw_chunk in self.source:
            if isinstance(raw_chunk, (bytes, bytearray)):
                raw_chunk = raw_chunk.decode("utf-8")
            parsed = parse_sse_chunk(str(raw_chunk))
            if parsed.tool_calls:
                self._accumulate_tool_calls(parsed.tool_calls)
            yield parsed
