from pathlib import Path
from typing import Optional

from support_agent.agent.llm_client import LLMClient
from support_agent.vars import WORKFLOW_STATE_DB
from support_agent.workflows.engine import WorkflowEngine
from support_agent.workflows.multiple_choice import build_multiple_choice_workflow
from support_agent.workflows.repository import WorkflowRepository
from support_agent.workflows.request_email import build_request_email_workflow
from support_agent.workflows.state import WorkflowRunStore
from support_agent.workflows.suggestions import build_suggestion_workflow


def build_repository(llm_client: Optional[LLMClient] = None) -> WorkflowRepository:
    return WorkflowRepository(
        [
            build_request_email_workflow(),
            build_multiple_choice_workflow(),
            build_suggestion_workflow(llm_client or LLMClient()),
        ]
    )


# Default engine instance
_default_engine: Optional[WorkflowEngine] = None


def get_workflow_engine() -> WorkflowEngine:
    """Get or create the process-wide workflow engine."""
    global _default_engine
    if _default_engine is None:
        _default_engine = WorkflowEngine(
            build_repository(), WorkflowRunStore(Path(WORKFLOW_STATE_DB))
        )
    return _default_engine
