import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from opentelemetry import trace
from pydantic import ValidationError as PydanticValidationError

from support_agent.agent.chat_runner import SupportChatRunner
from support_agent.agent.llm_client import LLMClient
from support_agent.agent.models import Message, MessageRole
from support_agent.errors import (
    BackendError,
    ConfigError,
    NotFoundError,
    StateError,
    ValidationError,
)
from support_agent.models import ChatRequest, EscalationContext, ResumeRequest
from support_agent.request_body import extract_body
from support_agent.retrieval import get_retrieval_pipeline
from support_agent.streaming.events import create_sse_response
from support_agent.streaming.multiplexer import AugmentedChatStream, extract_message_text
from support_agent.tools import build_tool_dispatcher
from support_agent.utils.exception_logging import log_exception_with_details
from support_agent.utils.traced_requests import traced_request
from support_agent.vars import DEFAULT_NAMESPACE
from support_agent.workflows import get_workflow_engine
from support_agent.workflows.engine import WorkflowEngine
from support_agent.workflows.models import RunResult, RunStatus
from support_agent.workflows.suggestions import REQUIRED_CONTEXT_FIELDS, SUGGESTION_WORKFLOW_ID

router = APIRouter()

logger = logging.getLogger("uvicorn.error")

tracer = trace.get_tracer(__name__)


def get_engine() -> WorkflowEngine:
    return get_workflow_engine()


def get_llm_client() -> LLMClient:
    return LLMClient()


def get_augmenter() -> AugmentedChatStream:
    return AugmentedChatStream(get_retrieval_pipeline())


def get_chat_runner(
    engine: WorkflowEngine = Depends(get_engine),
    llm_client: LLMClient = Depends(get_llm_client),
) -> SupportChatRunner:
    return SupportChatRunner(
        llm_client, build_tool_dispatcher(engine, get_retrieval_pipeline())
    )


def _pydantic_detail(e: PydanticValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in e.errors()
    )


def _http_exception(prefix: str, e: Exception) -> HTTPException:
    """Map a domain error onto the HTTP status it stands for."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, PydanticValidationError):
        logger.warning(f"{prefix} Invalid request: {_pydantic_detail(e)}")
        return HTTPException(status_code=422, detail=_pydantic_detail(e))
    if isinstance(e, ValidationError):
        logger.warning(f"{prefix} Invalid request: {e}")
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, NotFoundError):
        logger.warning(f"{prefix} Not found: {e}")
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, StateError):
        logger.warning(f"{prefix} Conflict: {e}")
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, BackendError):
        log_exception_with_details(logger, prefix, e)
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, ConfigError):
        logger.error(f"{prefix} Configuration error: {e}")
        return HTTPException(status_code=500, detail=str(e))
    log_exception_with_details(logger, prefix, e)
    return HTTPException(status_code=500, detail="Internal server error")


def to_llm_messages(messages: List[Dict[str, Any]]) -> List[Message]:
    """Keep the user and assistant turns that carry text."""
    converted = []
    for message in messages:
        role = message.get("role")
        if role not in (MessageRole.USER.value, MessageRole.ASSISTANT.value):
            continue
        text = extract_message_text(message)
        if text.strip():
            converted.append(Message(role=MessageRole(role), content=text))
    return converted


def resume_response(
    result: RunResult, escalation_context: Optional[EscalationContext]
) -> Dict[str, Any]:
    response: Dict[str, Any] = {
        "status": result.status.value,
        "suspended": result.is_suspended,
    }
    if result.is_completed:
        response["output"] = result.result
        email = (result.result or {}).get("email")
        if escalation_context is not None and email:
            # handoff records are persisted by the caller
            response["escalationContext"] = {
                **escalation_context.model_dump(by_alias=True),
                "email": email,
            }
    elif result.is_suspended:
        response["suspendedSteps"] = list(result.suspended)
        response["suspendPayload"] = result.suspend_payload
    elif result.error:
        response["error"] = result.error
    return response


@router.post("/chat")
async def chat(
    request: Request,
    augmenter: AugmentedChatStream = Depends(get_augmenter),
    runner: SupportChatRunner = Depends(get_chat_runner),
):
    try:
        body = await extract_body(request)
        chat_request = ChatRequest.model_validate(body)
        runner.llm_client.ensure_configured()
    except Exception as e:
        raise _http_exception("[ChatRoute]", e)

    payload = {"messages": chat_request.messages, "data": dict(chat_request.data or {})}
    namespace = payload["data"].get("namespace") or DEFAULT_NAMESPACE
    with traced_request(
        tracer,
        operation="chat",
        start_message=f"[ChatRoute] Chat request with {len(chat_request.messages)} messages",
        namespace=namespace,
    ):
        retrieval = await augmenter.prepare(payload)
        upstream = runner.stream_chat(
            to_llm_messages(payload["messages"]),
            auto_search_context=payload["data"].get("autoSearchContext") or None,
        )
        return create_sse_response(augmenter.relay(upstream, retrieval))


@router.post("/workflows/resume")
async def resume_workflow(
    request: Request,
    engine: WorkflowEngine = Depends(get_engine),
):
    try:
        body = await extract_body(request)
        resume = ResumeRequest.model_validate(body)
        with traced_request(
            tracer,
            operation="resume_workflow",
            start_message=f"[WorkflowResume] Resuming run {resume.workflow_run_id} at step '{resume.step}'",
            run_id=resume.workflow_run_id,
            extra_attrs={"workflow.step": resume.step},
        ):
            definition = engine.repository.for_step(resume.step)
            run = engine.get_run(resume.workflow_run_id)
            if run.workflow_id != definition.workflow_id:
                raise StateError(
                    f"Run '{run.run_id}' belongs to workflow '{run.workflow_id}', "
                    f"not '{definition.workflow_id}'"
                )
            result = await engine.resume(run, resume.step, resume.resume_data)
            return resume_response(result, resume.escalation_context)
    except Exception as e:
        raise _http_exception("[WorkflowResume]", e)


@router.post("/workflows/suggestion-workflow")
async def suggestion_workflow(
    request: Request,
    engine: WorkflowEngine = Depends(get_engine),
    llm_client: LLMClient = Depends(get_llm_client),
):
    try:
        context = await extract_body(request)
        missing = [name for name in REQUIRED_CONTEXT_FIELDS if name not in context]
        if missing:
            raise ValidationError(
                f"Invalid context provided. Missing required fields: {', '.join(missing)}. "
                f"Provided fields: {', '.join(context.keys())}",
                path="body",
            )
        llm_client.ensure_configured()

        with traced_request(
            tracer,
            operation="suggestion_workflow",
            start_message=f"[SuggestionWorkflow] Context parsed with fields: {', '.join(context.keys())}",
            extra_attrs={"suggestions.user_type": str(context.get("userType"))},
        ):
            run = engine.create_run(SUGGESTION_WORKFLOW_ID)
            result = await engine.start(run, context)
            if result.status != RunStatus.COMPLETED:
                logger.error(
                    f"[SuggestionWorkflow] Run {result.run_id} ended as {result.status.value}: {result.error}"
                )
                raise HTTPException(
                    status_code=502,
                    detail=f"Suggestion generation failed: {result.error or result.status.value}",
                )
            return {"suggestions": result.result["suggestions"]}
    except Exception as e:
        raise _http_exception("[SuggestionWorkflow]", e)


@router.get("/workflows/runs/{run_id}")
async def get_workflow_run(run_id: str, engine: WorkflowEngine = Depends(get_engine)):
    try:
        return engine.get_run(run_id).snapshot()
    except Exception as e:
        raise _http_exception("[WorkflowRuns]", e)
