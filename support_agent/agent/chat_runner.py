import json
import logging
import uuid
from typing import AsyncGenerator, List, Optional

from opentelemetry import trace

from support_agent.agent.chunks import ChunkReader
from support_agent.agent.llm_client import LLMClient
from support_agent.agent.models import (
    ChatCompletionRequest,
    Message,
    MessageRole,
    ToolCall,
    ToolCallFunction,
)
from support_agent.agent.prompts import AUTO_SEARCH_CONTEXT_PROMPT, SUPPORT_AGENT_PROMPT
from support_agent.errors import BackendError, ConfigError
from support_agent.streaming.events import DONE_FRAME, SSEEvent
from support_agent.tools.registry import ToolDispatcher, tool_declarations
from support_agent.utils.exception_logging import log_exception_with_details
from support_agent.vars import AGENT_MAX_ITERATIONS, LLM_MODEL_NAME

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)


class SupportChatRunner:
    """
    Streaming chat with tool-call handling for the support agent.

    Content chunks from the LLM are relayed as they arrive. After each
    completion the accumulated tool calls are dispatched, one ``tool-result``
    frame is emitted per call and the results are fed back to the model. The
    turn ends when the model stops calling tools, a tool leaves a workflow
    suspended, or ``max_iterations`` completions have run.
    """

    def __init__(
        self,
        llm_client: LLMClient,
        dispatcher: ToolDispatcher,
        max_iterations: int = AGENT_MAX_ITERATIONS,
    ):
        self.llm_client = llm_client
        self.dispatcher = dispatcher
        self.max_iterations = max_iterations

    def build_history(
        self, messages: List[Message], auto_search_context: Optional[str] = None
    ) -> List[Message]:
        history = [Message(role=MessageRole.SYSTEM, content=SUPPORT_AGENT_PROMPT)]
        if auto_search_context:
            history.append(
                Message(
                    role=MessageRole.SYSTEM,
                    content=AUTO_SEARCH_CONTEXT_PROMPT.format(context=auto_search_context),
                )
            )
        history.extend(m for m in messages if m.role != MessageRole.SYSTEM)
        return history

    async def stream_chat(
        self,
        messages: List[Message],
        auto_search_context: Optional[str] = None,
    ) -> AsyncGenerator[str, None]:
        messages_history = self.build_history(messages, auto_search_context)
        tools = tool_declarations()
        iteration = 0

        try:
            while iteration < self.max_iterations:
                iteration += 1
                llm_request = ChatCompletionRequest(
                    messages=messages_history,
                    model=LLM_MODEL_NAME,
                    tools=tools,
                    stream=True,
                )

                content_message = ""
                reader = ChunkReader(self.llm_client.stream_completion(llm_request))
                async for parsed in reader.as_parsed():
                    if parsed.is_done:
                        break
                    if parsed.content:
                        content_message += parsed.content
                        yield parsed.raw if parsed.raw.endswith("\n\n") else f"{parsed.raw}\n\n"

                tool_calls = reader.tool_calls()
                if not tool_calls:
                    logger.info(f"[SupportChatRunner] Turn finished after {iteration} completion(s)")
                    break

                with tracer.start_as_current_span("execute_tool_calls") as tool_span:
                    tool_span.set_attribute("tool_calls.count", len(tool_calls))
                    calls = [
                        ToolCall(
                            id=tc["id"] or f"call_{uuid.uuid4().hex[:12]}",
                            function=ToolCallFunction(name=tc["name"], arguments=tc["arguments"] or "{}"),
                        )
                        for tc in tool_calls
                    ]
                    messages_history.append(
                        Message(
                            role=MessageRole.ASSISTANT,
                            content=content_message if content_message.strip() else None,
                            tool_calls=calls,
                        )
                    )

                    suspended = False
                    for call in calls:
                        logger.info(f"[SupportChatRunner] Running tool '{call.function.name}'")
                        outcome = await self.dispatcher.dispatch(
                            call.function.name, call.function.arguments
                        )
                        suspended = suspended or outcome.suspended
                        yield SSEEvent.tool_result_event(
                            call.id, outcome.name, outcome.content
                        ).to_sse_string()
                        messages_history.append(
                            Message(
                                role=MessageRole.TOOL,
                                tool_call_id=call.id,
                                name=outcome.name,
                                content=json.dumps(outcome.content, ensure_ascii=False),
                            )
                        )
                    tool_span.set_attribute("tool_calls.suspended", suspended)

                if suspended:
                    # the UI now waits for user input; resuming is a new request
                    logger.info("[SupportChatRunner] Workflow suspended, ending turn")
                    break
            else:
                logger.warning(
                    f"[SupportChatRunner] Reached max iterations ({self.max_iterations})"
                )
        except (BackendError, ConfigError) as e:
            log_exception_with_details(logger, "[SupportChatRunner]", e)
            yield SSEEvent.error_event(str(e)).to_sse_string()

        yield DONE_FRAME
