import logging
from typing import Dict, Iterable, Optional

from support_agent.errors import NotFoundError
from support_agent.workflows.models import WorkflowDefinition

logger = logging.getLogger("uvicorn.error")


class WorkflowRepository:
    """
    Registry of workflow definitions, addressable by workflow id or by the id
    of any of their steps.
    """

    def __init__(self, definitions: Optional[Iterable[WorkflowDefinition]] = None):
        self._definitions: Dict[str, WorkflowDefinition] = {}
        self._by_step: Dict[str, str] = {}
        for definition in definitions or []:
            self.register(definition)

    def register(self, definition: WorkflowDefinition) -> None:
        if definition.workflow_id in self._definitions:
            raise ValueError(f"Workflow '{definition.workflow_id}' is already registered")
        for step in definition.steps:
            owner = self._by_step.get(step.step_id)
            if owner:
                raise ValueError(
                    f"Step '{step.step_id}' is already owned by workflow '{owner}'"
                )
        self._definitions[definition.workflow_id] = definition
        for step in definition.steps:
            self._by_step[step.step_id] = definition.workflow_id
        logger.debug(f"[WorkflowRepository] Registered workflow '{definition.workflow_id}'")

    def get(self, workflow_id: str) -> WorkflowDefinition:
        if workflow_id not in self._definitions:
            raise NotFoundError(f"Workflow '{workflow_id}' not found")
        return self._definitions[workflow_id]

    def for_step(self, step_id: str) -> WorkflowDefinition:
        workflow_id = self._by_step.get(step_id)
        if workflow_id is None:
            raise NotFoundError(f"No workflow owns step '{step_id}'")
        return self._definitions[workflow_id]
