"""
Server-Sent Event framing for the chat stream.

Every frame is a JSON object prefixed with ``data: `` and terminated by a
blank line, the same framing the upstream LLM uses, so injected events and
relayed chunks can share one response:

    data: {"type": "data-retrieval", "data": {"results": [...], "resultCount": 2}}

    data: {"type": "tool-result", "toolCallId": "call_1", "toolName": "escalate", "result": {...}}

"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncGenerator, Optional

from fastapi.responses import StreamingResponse

DONE_FRAME = "data: [DONE]\n\n"


class SSEEventType(str, Enum):
    DATA_RETRIEVAL = "data-retrieval"
    TOOL_RESULT = "tool-result"
    ERROR = "error"


@dataclass
class SSEEvent:
    type: SSEEventType
    data: Optional[Any] = None
    error: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    result: Optional[Any] = None

    def to_sse_string(self) -> str:
        """Convert the event to SSE wire format."""
        event_dict = {"type": self.type.value}
        if self.data is not None:
            event_dict["data"] = self.data
        if self.error is not None:
            event_dict["error"] = self.error
        if self.tool_call_id is not None:
            event_dict["toolCallId"] = self.tool_call_id
        if self.tool_name is not None:
            event_dict["toolName"] = self.tool_name
        if self.result is not None:
            event_dict["result"] = self.result
        return f"data: {json.dumps(event_dict, ensure_ascii=False)}\n\n"

    @classmethod
    def retrieval_event(cls, data: Any) -> "SSEEvent":
        return cls(type=SSEEventType.DATA_RETRIEVAL, data=data)

    @classmethod
    def tool_result_event(cls, tool_call_id: str, tool_name: str, result: Any) -> "SSEEvent":
        return cls(
            type=SSEEventType.TOOL_RESULT,
            tool_call_id=tool_call_id,
            tool_name=tool_name,
            result=result,
        )

    @classmethod
    def error_event(cls, error: str) -> "SSEEvent":
        return cls(type=SSEEventType.ERROR, error=error)


def create_sse_response(event_generator: AsyncGenerator[str, None]) -> StreamingResponse:
    return StreamingResponse(
        event_generator,
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable buffering in nginx
        },
    )
