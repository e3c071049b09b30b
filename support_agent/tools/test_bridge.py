import pytest

from support_agent.errors import NotFoundError, StateError
from support_agent.tools.bridge import WorkflowToolBridge
from support_agent.workflows.engine import WorkflowEngine
from support_agent.workflows.models import (
    StepDefinition,
    WorkflowDefinition,
)
from support_agent.workflows.repository import WorkflowRepository

OPTIONS = [{"id": "a", "label": "Infant"}, {"id": "b", "label": "Toddler"}]


@pytest.mark.asyncio
async def test_suspended_workflow_returns_run_id_and_payload(engine):
    bridge = WorkflowToolBridge(engine)

    outcome = await bridge.run(
        "multiple-choice-workflow", {"question": "Which program?", "options": OPTIONS}
    )

    assert outcome["suspended"] is True
    assert outcome["workflowRunId"].strip()
    assert outcome["suspendPayload"] == {
        "question": "Which program?",
        "options": OPTIONS,
        "reason": "User selection required",
    }
    assert engine.get_run(outcome["workflowRunId"]).status.value == "suspended"


@pytest.mark.asyncio
async def test_returned_run_id_resumes_the_run(engine):
    bridge = WorkflowToolBridge(engine)
    outcome = await bridge.run("request-email-workflow", {"message": "Email?"})

    result = await engine.resume(
        outcome["workflowRunId"], "request-email-step", {"email": "a@b.com"}
    )

    assert result.result == {"email": "a@b.com", "submitted": True}


@pytest.mark.asyncio
async def test_completed_workflow_spreads_output(run_store):
    definition = WorkflowDefinition(
        workflow_id="instant",
        steps=[
            StepDefinition(
                step_id="instant-step",
                execute=lambda ctx: ctx.complete({"answer": 42}),
                input_schema={"type": "object"},
                output_schema={"type": "object"},
            )
        ],
        input_schema={"type": "object"},
        output_schema={"type": "object"},
    )
    bridge = WorkflowToolBridge(WorkflowEngine(WorkflowRepository([definition]), run_store))

    outcome = await bridge.run("instant", {})

    assert outcome["suspended"] is False
    assert outcome["answer"] == 42
    assert outcome["workflowRunId"]


@pytest.mark.asyncio
async def test_unknown_workflow_fails_fast(engine):
    bridge = WorkflowToolBridge(engine)

    with pytest.raises(NotFoundError):
        await bridge.run("missing-workflow", {})


@pytest.mark.asyncio
async def test_failed_run_raises_state_error(run_store):
    def explode(ctx):
        raise RuntimeError("boom")

    definition = WorkflowDefinition(
        workflow_id="explode",
        steps=[
            StepDefinition(
                step_id="explode-step",
                execute=explode,
                input_schema={"type": "object"},
                output_schema={"type": "object"},
            )
        ],
        input_schema={"type": "object"},
        output_schema={"type": "object"},
    )
    bridge = WorkflowToolBridge(WorkflowEngine(WorkflowRepository([definition]), run_store))

    with pytest.raises(StateError):
        await bridge.run("explode", {})
