"""
Tools offered to the support agent, declared as OpenAI functions, and the
dispatcher that executes the calls the model makes.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import jsonschema
from jsonschema.exceptions import best_match

from support_agent.agent.models import FunctionDefinition, Tool
from support_agent.retrieval.pipeline import RetrievalPipeline
from support_agent.tools.bridge import WorkflowToolBridge
from support_agent.tools.escalate import ESCALATION_REASONS, EscalationOrchestrator
from support_agent.utils.exception_logging import log_exception_with_details
from support_agent.vars import DEFAULT_NAMESPACE
from support_agent.workflows.multiple_choice import MULTIPLE_CHOICE_WORKFLOW_ID
from support_agent.workflows.request_email import REQUEST_EMAIL_WORKFLOW_ID

logger = logging.getLogger("uvicorn.error")

_SEARCH_PROPERTIES = {
    "query": {
        "type": "string",
        "description": "The search query to find relevant information",
    },
    "namespace": {
        "type": "string",
        "description": f'Namespace to search in (e.g. "public", "restricted"). Defaults to "{DEFAULT_NAMESPACE}"',
    },
    "topK": {
        "type": "integer",
        "minimum": 1,
        "maximum": 20,
        "description": "Number of results to return (default: 5)",
    },
}

TOOL_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "vector_search": {
        "description": (
            "Search the knowledge base for relevant information using semantic search. "
            "Use this when you need to find information from stored documents, policies, "
            "FAQs, or other knowledge base content."
        ),
        "parameters": {
            "type": "object",
            "properties": dict(_SEARCH_PROPERTIES),
            "required": ["query"],
        },
    },
    "keyword_search": {
        "description": (
            "Search the knowledge base with a keyword-focused query. Use this as a fallback "
            "when vector_search doesn't return the desired results."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                **_SEARCH_PROPERTIES,
                "requiredTerms": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Terms to emphasize in the query (not used for filtering)",
                },
            },
            "required": ["query"],
        },
    },
    "escalate": {
        "description": (
            "Escalate the conversation to a human when you cannot answer the question: "
            "no relevant information was found, confidence is low, or the user asked for "
            "human assistance. Use reason 'emergency' for medical emergencies."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "reason": {"enum": ESCALATION_REASONS, "description": "Reason for escalation"},
                "question": {
                    "type": "string",
                    "description": "The original question that triggered escalation",
                },
                "chatId": {"type": "string", "description": "Chat ID if available"},
                "searchResultsCount": {
                    "type": "integer",
                    "minimum": 0,
                    "default": 0,
                    "description": "Number of search results found (0 for no-match)",
                },
            },
            "required": ["reason", "question"],
        },
    },
    "multiple_choice": {
        "description": (
            "Present a multiple choice question to the user to clarify their needs or narrow "
            "down options. Use this when the question is ambiguous before searching or escalating."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "question": {"type": "string", "description": "The question text to display"},
                "options": {
                    "type": "array",
                    "minItems": 2,
                    "items": {
                        "type": "object",
                        "properties": {
                            "id": {"type": "string", "description": "Unique identifier for the option"},
                            "label": {"type": "string", "description": "Display label for the option"},
                        },
                        "required": ["id", "label"],
                    },
                    "description": "Choice options (minimum 2)",
                },
                "chatId": {"type": "string", "description": "Chat ID for context"},
            },
            "required": ["question", "options"],
        },
    },
    "request_email": {
        "description": "Ask the user for their email address so staff can follow up.",
        "parameters": {
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message shown above the email input"},
                "chatId": {"type": "string", "description": "Chat ID for context"},
            },
        },
    },
}


def tool_declarations() -> List[Tool]:
    return [
        Tool(
            function=FunctionDefinition(
                name=name,
                description=schema["description"],
                parameters=schema["parameters"],
            )
        )
        for name, schema in TOOL_SCHEMAS.items()
    ]


@dataclass
class ToolOutcome:
    name: str
    content: Dict[str, Any]

    @property
    def suspended(self) -> bool:
        return bool(self.content.get("suspended"))

    @property
    def is_error(self) -> bool:
        return "error" in self.content


def _argument_error(name: str, arguments: Any) -> Optional[str]:
    validator = jsonschema.Draft202012Validator(TOOL_SCHEMAS[name]["parameters"])
    error = best_match(validator.iter_errors(arguments))
    if error is None:
        return None
    location = ".".join(str(part) for part in error.absolute_path)
    return f"{location or 'arguments'}: {error.message}"


class ToolDispatcher:
    """Executes a tool call by name; failures become ``{"error": ...}`` results."""

    def __init__(
        self,
        pipeline: RetrievalPipeline,
        bridge: WorkflowToolBridge,
        escalation: EscalationOrchestrator,
    ):
        self.pipeline = pipeline
        self.bridge = bridge
        self.escalation = escalation

    async def dispatch(self, name: str, raw_arguments: Any) -> ToolOutcome:
        if name not in TOOL_SCHEMAS:
            logger.warning(f"[ToolDispatcher] Unknown tool '{name}'")
            return ToolOutcome(name, {"error": f"Unknown tool '{name}'"})

        if isinstance(raw_arguments, str):
            try:
                arguments = json.loads(raw_arguments) if raw_arguments.strip() else {}
            except json.JSONDecodeError as e:
                return ToolOutcome(name, {"error": f"Arguments are not valid JSON: {e.msg}"})
        else:
            arguments = raw_arguments or {}

        problem = _argument_error(name, arguments)
        if problem:
            logger.warning(f"[ToolDispatcher] Invalid arguments for '{name}': {problem}")
            return ToolOutcome(name, {"error": f"Invalid arguments: {problem}"})

        try:
            content = await getattr(self, f"_run_{name}")(arguments)
        except Exception as e:
            log_exception_with_details(logger, f"[ToolDispatcher] Tool '{name}' failed:", e)
            return ToolOutcome(name, {"error": f"{name} failed: {e}"})
        return ToolOutcome(name, content)

    async def _run_vector_search(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.pipeline.search(
            arguments["query"],
            arguments.get("namespace") or DEFAULT_NAMESPACE,
            arguments.get("topK", 5),
        )
        return result.to_dict()

    async def _run_keyword_search(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        result = await self.pipeline.keyword_search(
            arguments["query"],
            arguments.get("namespace") or DEFAULT_NAMESPACE,
            arguments.get("topK", 5),
            arguments.get("requiredTerms"),
        )
        return result.to_dict()

    async def _run_escalate(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return await self.escalation.escalate(
            arguments["reason"],
            arguments["question"],
            chat_id=arguments.get("chatId"),
            search_results_count=arguments.get("searchResultsCount", 0),
        )

    async def _run_multiple_choice(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return await self.bridge.run(
            MULTIPLE_CHOICE_WORKFLOW_ID,
            {
                "question": arguments["question"],
                "options": arguments["options"],
                "chatId": arguments.get("chatId"),
            },
        )

    async def _run_request_email(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return await self.bridge.run(
            REQUEST_EMAIL_WORKFLOW_ID,
            {"message": arguments.get("message"), "chatId": arguments.get("chatId")},
        )
