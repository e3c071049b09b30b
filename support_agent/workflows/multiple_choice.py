"""Single-step workflow that asks the user to pick one of several options."""

from support_agent.workflows.models import (
    StepContext,
    StepDefinition,
    StepOutcome,
    WorkflowDefinition,
)

MULTIPLE_CHOICE_WORKFLOW_ID = "multiple-choice-workflow"
MULTIPLE_CHOICE_STEP_ID = "multiple-choice-step"

_OPTION_SCHEMA = {
    "type": "object",
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "label": {"type": "string"},
    },
    "required": ["id", "label"],
}

INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "question": {"type": "string"},
        "options": {"type": "array", "items": _OPTION_SCHEMA, "minItems": 2},
        "chatId": {"type": ["string", "null"]},
    },
    "required": ["question", "options"],
}

RESUME_SCHEMA = {
    "type": "object",
    "properties": {"selectedOptionId": {"type": ["string", "null"]}},
}

SUSPEND_SCHEMA = {
    "type": "object",
    "properties": {
        "question": {"type": "string"},
        "options": {"type": "array", "items": _OPTION_SCHEMA},
        "reason": {"type": "string"},
    },
    "required": ["question", "options", "reason"],
}

OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "selectedOptionId": {"type": "string"},
        "selectedOptionLabel": {"type": "string"},
        "submitted": {"const": True},
    },
    "required": ["selectedOptionId", "selectedOptionLabel", "submitted"],
}


def multiple_choice(context: StepContext) -> StepOutcome:
    question = context.input_data["question"]
    options = context.input_data["options"]
    selected_id = (context.resume_data or {}).get("selectedOptionId")

    if not selected_id:
        return context.suspend(
            {"question": question, "options": options, "reason": "User selection required"}
        )

    selected = next((option for option in options if option["id"] == selected_id), None)
    if selected is None:
        return context.suspend(
            {"question": question, "options": options, "reason": "Invalid option selected"}
        )

    return context.complete(
        {
            "selectedOptionId": selected["id"],
            "selectedOptionLabel": selected["label"],
            "submitted": True,
        }
    )


def build_multiple_choice_workflow() -> WorkflowDefinition:
    step = StepDefinition(
        step_id=MULTIPLE_CHOICE_STEP_ID,
        execute=multiple_choice,
        input_schema=INPUT_SCHEMA,
        resume_schema=RESUME_SCHEMA,
        suspend_schema=SUSPEND_SCHEMA,
        output_schema=OUTPUT_SCHEMA,
    )
    return WorkflowDefinition(
        workflow_id=MULTIPLE_CHOICE_WORKFLOW_ID,
        steps=[step],
        input_schema=INPUT_SCHEMA,
        output_schema=OUTPUT_SCHEMA,
        description="Ask the user to choose between options",
    )
