"""Single-step workflow that collects a contact email address from the user."""

import re

from support_agent.workflows.models import (
    StepContext,
    StepDefinition,
    StepOutcome,
    WorkflowDefinition,
)

REQUEST_EMAIL_WORKFLOW_ID = "request-email-workflow"
REQUEST_EMAIL_STEP_ID = "request-email-step"

DEFAULT_EMAIL_PROMPT = "Please provide your email address so we can get back to you."
INVALID_EMAIL_PROMPT = "Please enter a valid email address."

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_OPTIONAL_STRING = {"type": ["string", "null"]}

INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "message": _OPTIONAL_STRING,
        "chatId": _OPTIONAL_STRING,
    },
}

# Types only: a missing or malformed address re-suspends instead of failing.
RESUME_SCHEMA = {
    "type": "object",
    "properties": {"email": _OPTIONAL_STRING},
}

SUSPEND_SCHEMA = {
    "type": "object",
    "properties": {
        "message": {"type": "string"},
        "reason": {"type": "string"},
    },
    "required": ["message", "reason"],
}

OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "email": {"type": "string", "minLength": 1},
        "submitted": {"const": True},
    },
    "required": ["email", "submitted"],
}


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value))


def request_email(context: StepContext) -> StepOutcome:
    message = context.input_data.get("message") or DEFAULT_EMAIL_PROMPT
    email = ((context.resume_data or {}).get("email") or "").strip()

    if not email:
        return context.suspend({"message": message, "reason": "Email required"})

    if not is_valid_email(email):
        return context.suspend(
            {"message": INVALID_EMAIL_PROMPT, "reason": "Invalid email format"}
        )

    return context.complete({"email": email, "submitted": True})


def build_request_email_workflow() -> WorkflowDefinition:
    step = StepDefinition(
        step_id=REQUEST_EMAIL_STEP_ID,
        execute=request_email,
        input_schema=INPUT_SCHEMA,
        resume_schema=RESUME_SCHEMA,
        suspend_schema=SUSPEND_SCHEMA,
        output_schema=OUTPUT_SCHEMA,
        description="Suspend until the user submits a valid email address.",
    )
    return WorkflowDefinition(
        workflow_id=REQUEST_EMAIL_WORKFLOW_ID,
        steps=[step],
        input_schema=INPUT_SCHEMA,
        output_schema=OUTPUT_SCHEMA,
        description="Collect the user's email address",
    )
