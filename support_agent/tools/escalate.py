"""
Escalation of a conversation to a human.

Emergencies get a fixed safety message immediately. Every other reason
starts the email-collection workflow so staff can follow up.
"""

import logging
from typing import Any, Dict, Optional

from support_agent.tools.bridge import WorkflowToolBridge
from support_agent.utils import preview
from support_agent.workflows.request_email import REQUEST_EMAIL_WORKFLOW_ID

logger = logging.getLogger("uvicorn.error")

ESCALATION_REASONS = ["no_results", "low_confidence", "user_request", "sensitive", "emergency"]

EMERGENCY_MESSAGE = (
    "For medical emergencies, please call 911 immediately. "
    "I've also notified our staff to follow up with you."
)
NO_MATCH_MESSAGE = (
    "I don't have information about that in our knowledge base. "
    "Let me connect you with someone who can help. "
    "Please provide your email address so we can get back to you."
)
USER_REQUEST_MESSAGE = (
    "I'd be happy to connect you with a staff member. "
    "Please provide your email address so we can get back to you."
)
LOW_CONFIDENCE_MESSAGE = (
    "I want to make sure you get the most accurate information. "
    "Let me connect you with someone who can help. "
    "Please provide your email address so we can get back to you."
)


def escalation_message(reason: str, search_results_count: Optional[int] = 0) -> str:
    # an unknown or zero hit count means no match whatever the stated reason
    if reason == "no_results" or not search_results_count:
        return NO_MATCH_MESSAGE
    if reason == "user_request":
        return USER_REQUEST_MESSAGE
    return LOW_CONFIDENCE_MESSAGE


class EscalationOrchestrator:
    def __init__(self, bridge: WorkflowToolBridge):
        self.bridge = bridge

    async def escalate(
        self,
        reason: str,
        question: str,
        chat_id: Optional[str] = None,
        search_results_count: Optional[int] = 0,
    ) -> Dict[str, Any]:
        logger.info(f'[EscalateTool] Escalating ({reason}): "{preview(question)}"')

        if reason == "emergency":
            return {
                "escalated": True,
                "message": EMERGENCY_MESSAGE,
                "requiresEmail": False,
                "reason": reason,
                "question": question,
            }

        message = escalation_message(reason, search_results_count)
        try:
            outcome = await self.bridge.run(
                REQUEST_EMAIL_WORKFLOW_ID, {"message": message, "chatId": chat_id}
            )
        except Exception as e:
            logger.error(
                f"[EscalateTool] Error starting email workflow, falling back to plain message: {e}",
                exc_info=e,
            )
            return {
                "escalated": True,
                "message": message,
                "requiresEmail": True,
                "reason": reason,
                "question": question,
            }

        return {
            **outcome,
            "escalated": True,
            "requiresEmail": True,
            "reason": reason,
            "question": question,
        }
