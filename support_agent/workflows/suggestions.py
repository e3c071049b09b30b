"""
Single-step workflow that asks the suggestion model for conversation starters
tailored to the user's time, season and recent chat history.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from support_agent.agent.llm_client import LLMClient
from support_agent.agent.models import ChatCompletionRequest, Message, MessageRole
from support_agent.agent.prompts import SUGGESTION_AGENT_PROMPT
from support_agent.utils import preview
from support_agent.vars import SUGGESTION_MODEL_NAME
from support_agent.workflows.models import StepContext, StepDefinition, WorkflowDefinition

logger = logging.getLogger("uvicorn.error")

SUGGESTION_WORKFLOW_ID = "suggestion-workflow"
SUGGESTION_STEP_ID = "generate-suggestions"

REQUIRED_CONTEXT_FIELDS = [
    "userId",
    "userType",
    "timeOfDay",
    "dayOfWeek",
    "dayOfYear",
    "isWeekend",
]

MIN_SUGGESTIONS = 4
MAX_SUGGESTIONS = 6
FALLBACK_SUGGESTIONS = [
    "What's on the school calendar this week?",
    "What are the school's attendance policies?",
    "How can I check my child's academic progress?",
    "Tell me about upcoming school events",
]

_DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
_LIST_MARKER_RE = re.compile(r"^(?:\d+[.)]|[-*•])\s*")

INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "userId": {"type": "string"},
        "userType": {"enum": ["guest", "regular"]},
        "timeOfDay": {"enum": ["morning", "afternoon", "evening", "night"]},
        "dayOfWeek": {"type": "integer", "minimum": 0, "maximum": 6},
        "dayOfYear": {"type": "integer", "minimum": 1, "maximum": 366},
        "isWeekend": {"type": "boolean"},
        "season": {"enum": ["spring", "summer", "fall", "winter"]},
        "isHoliday": {"type": "boolean"},
        "holidayName": {"type": "string"},
        "chatHistory": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "role": {"type": "string"},
                    "text": {"type": "string"},
                },
                "required": ["role", "text"],
            },
        },
        "geolocation": {
            "type": "object",
            "properties": {
                "city": {"type": "string"},
                "country": {"type": "string"},
            },
        },
    },
    "required": REQUIRED_CONTEXT_FIELDS,
}

OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "suggestions": {
            "type": "array",
            "items": {"type": "string"},
            "minItems": MIN_SUGGESTIONS,
            "maxItems": MAX_SUGGESTIONS,
        }
    },
    "required": ["suggestions"],
}


def build_context_message(context: Dict[str, Any], now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    day_name = _DAY_NAMES[context["dayOfWeek"]]
    weekend = " (Weekend)" if context.get("isWeekend") else " (Weekday)"
    current_time = now.strftime("%I:%M %p").lstrip("0")

    lines = [
        "Current Date and Time:",
        f"- Today's date: {now.strftime('%B')} {now.day}, {now.year} ({now.strftime('%Y-%m-%d')})",
        f"- Day of week: {day_name}{weekend}",
        f"- Time of day: {context['timeOfDay']} (Current time: {current_time})",
        f"- Season: {context.get('season') or 'not specified'}",
        f"- Day of year: {context['dayOfYear']}",
    ]
    if context.get("isHoliday") and context.get("holidayName"):
        lines.append(f"- Today is a holiday: {context['holidayName']}")

    lines.append("\nUser Context:")
    lines.append(f"- User type: {context['userType']}")

    geolocation = context.get("geolocation") or {}
    if geolocation.get("city"):
        location = geolocation["city"]
        if geolocation.get("country"):
            location += f", {geolocation['country']}"
        lines.append(f"- Location: {location}")

    history = context.get("chatHistory") or []
    if history:
        lines.append("\nRecent Chat History:")
        for entry in history[-5:]:
            lines.append(f"- {entry['role']}: {entry['text'][:150]}")

    return "\n".join(lines)


def parse_suggestions(text: str) -> List[str]:
    """
    One suggestion per line with list markers removed. Lines outside
    10-200 characters are dropped; the result is padded with fallbacks to
    at least four and capped at six entries.
    """
    suggestions = []
    for line in (text or "").splitlines():
        candidate = _LIST_MARKER_RE.sub("", line.strip()).strip()
        if 10 < len(candidate) < 200:
            suggestions.append(candidate)
    suggestions = suggestions[:MAX_SUGGESTIONS]

    if len(suggestions) < MIN_SUGGESTIONS:
        logger.warning(
            f"[SuggestionWorkflow] Only found {len(suggestions)} suggestions, adding fallbacks"
        )
        suggestions.extend(FALLBACK_SUGGESTIONS[: MIN_SUGGESTIONS - len(suggestions)])
    return suggestions


def build_suggestion_workflow(llm_client: LLMClient) -> WorkflowDefinition:
    async def generate_suggestions(context: StepContext):
        request = ChatCompletionRequest(
            model=SUGGESTION_MODEL_NAME,
            messages=[
                Message(role=MessageRole.SYSTEM, content=SUGGESTION_AGENT_PROMPT),
                Message(
                    role=MessageRole.USER,
                    content=build_context_message(context.input_data),
                ),
            ],
        )
        response = await llm_client.non_stream_completion(request)
        logger.debug(f"[SuggestionWorkflow] Raw suggestions text: {preview(response.text, 500)}")
        suggestions = parse_suggestions(response.text)
        logger.info(f"[SuggestionWorkflow] Generated {len(suggestions)} suggestions")
        return context.complete({"suggestions": suggestions})

    step = StepDefinition(
        step_id=SUGGESTION_STEP_ID,
        execute=generate_suggestions,
        input_schema=INPUT_SCHEMA,
        output_schema=OUTPUT_SCHEMA,
        description="Generates contextual suggestions using the suggestion agent",
    )
    return WorkflowDefinition(
        workflow_id=SUGGESTION_WORKFLOW_ID,
        steps=[step],
        input_schema=INPUT_SCHEMA,
        output_schema=OUTPUT_SCHEMA,
        description="Generate conversation starters for the chat screen",
    )
