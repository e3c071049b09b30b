import logging
from typing import Any, Dict

from support_agent.errors import StateError
from support_agent.workflows.engine import WorkflowEngine
from support_agent.workflows.models import RunStatus

logger = logging.getLogger("uvicorn.error")


class WorkflowToolBridge:
    """
    Runs a workflow on behalf of an agent tool call and reports the outcome
    in a shape the model (and the UI rendering the tool result) can use.

    Suspended: ``{workflowRunId, suspended: True, suspendPayload}``.
    Completed: ``{workflowRunId, suspended: False, **result}``.
    """

    def __init__(self, engine: WorkflowEngine):
        self.engine = engine

    async def run(self, workflow_id: str, input_data: Dict[str, Any]) -> Dict[str, Any]:
        # create_run raises NotFoundError for unknown workflows and always returns a non-empty id
        run = self.engine.create_run(workflow_id)
        run_id = run.run_id
        result = await self.engine.start(run, input_data)

        if result.status == RunStatus.FAILED:
            raise StateError(
                f"Workflow '{workflow_id}' run {run_id} failed: {result.error or 'unknown error'}"
            )

        if result.is_suspended:
            logger.info(
                f"[WorkflowToolBridge] Workflow '{workflow_id}' suspended, run {run_id} awaits input"
            )
            return {
                "workflowRunId": run_id,
                "suspended": True,
                "suspendPayload": result.suspend_payload,
            }

        logger.info(f"[WorkflowToolBridge] Workflow '{workflow_id}' completed, run {run_id}")
        return {"workflowRunId": run_id, "suspended": False, **(result.result or {})}
