from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Inbound chat payload: UI messages plus optional side-channel ``data``."""

    messages: List[Dict[str, Any]] = Field(default_factory=list)
    data: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")


class EscalationContext(BaseModel):
    reason: str
    question: str
    chat_id: Optional[str] = Field(default=None, alias="chatId")
    search_results_count: Optional[int] = Field(default=0, alias="searchResultsCount")

    model_config = ConfigDict(populate_by_name=True)


class ResumeRequest(BaseModel):
    workflow_run_id: str = Field(alias="workflowRunId", min_length=1)
    step: str = Field(min_length=1)
    resume_data: Dict[str, Any] = Field(default_factory=dict, alias="resumeData")
    escalation_context: Optional[EscalationContext] = Field(
        default=None, alias="escalationContext"
    )

    model_config = ConfigDict(populate_by_name=True)
