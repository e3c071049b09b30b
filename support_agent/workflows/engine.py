"""
Suspend/resume state machine for workflow runs.

A run moves ``running -> (suspended <-> running)* -> completed | failed``.
Suspension is not a paused coroutine: a step returns ``Suspended(payload)``,
the engine persists the payload on the run and hands it back to the caller.
The resuming request may land on a different process; everything needed to
continue is read back from the run store.
"""

import inspect
import logging
from typing import Any, Dict, Optional, Union

import jsonschema
from jsonschema.exceptions import best_match

from support_agent.errors import NotFoundError, StateError, ValidationError
from support_agent.workflows.models import (
    Completed,
    RunResult,
    RunStatus,
    StepContext,
    StepDefinition,
    StepOutcome,
    Suspended,
    WorkflowDefinition,
    WorkflowRun,
    is_valid_run_id,
)
from support_agent.workflows.repository import WorkflowRepository
from support_agent.workflows.state import WorkflowRunStore

logger = logging.getLogger("uvicorn.error")


def validate_payload(data: Any, schema: Optional[Dict[str, Any]], label: str) -> None:
    """Raise ``ValidationError`` when ``data`` does not satisfy ``schema``."""
    if not schema:
        return
    validator = jsonschema.Draft202012Validator(schema)
    error = best_match(validator.iter_errors(data))
    if error is None:
        return
    location = ".".join(str(part) for part in error.absolute_path)
    path = f"{label}.{location}" if location else label
    raise ValidationError(f"{path} is invalid: {error.message}", path=path)


class _StepFailure(Exception):
    """A step misbehaved; the run is marked failed with this message."""


class WorkflowEngine:
    def __init__(self, repository: WorkflowRepository, store: WorkflowRunStore):
        self.repository = repository
        self.store = store

    def create_run(self, workflow_id: str, run_id: Optional[str] = None) -> WorkflowRun:
        """
        Allocate a new run in ``running`` status.

        When ``run_id`` is omitted one is generated; the returned run always
        carries a non-empty id. A blank ``run_id`` is rejected.
        """
        self.repository.get(workflow_id)
        run = WorkflowRun.new(workflow_id, run_id)
        self.store.insert_run(run)
        logger.info(f"[WorkflowEngine] Created run {run.run_id} for workflow '{workflow_id}'")
        return run

    def get_run(self, run_id: str) -> WorkflowRun:
        if not is_valid_run_id(run_id):
            raise ValidationError("run_id must be a non-empty string", path="runId")
        run = self.store.load_run(run_id)
        if run is None:
            raise NotFoundError(f"Workflow run '{run_id}' not found")
        return run

    async def start(
        self, run: Union[WorkflowRun, str], input_data: Dict[str, Any]
    ) -> RunResult:
        stored = self.get_run(_run_id_of(run))
        if stored.started or stored.status != RunStatus.RUNNING:
            raise StateError(
                f"Workflow run '{stored.run_id}' has already been started (status={stored.status.value})"
            )
        definition = self.repository.get(stored.workflow_id)
        validate_payload(input_data, definition.input_schema, "inputData")

        expected_version = stored.version
        stored.input_data = dict(input_data)
        stored.step_input = dict(input_data)
        logger.info(
            f"[WorkflowEngine] Starting run {stored.run_id} at step '{definition.first_step.step_id}'"
        )
        return await self._advance(
            stored,
            definition,
            definition.first_step,
            resume_data=None,
            expected_status=RunStatus.RUNNING,
            expected_step_id=None,
            expected_version=expected_version,
        )

    async def resume(
        self,
        run: Union[WorkflowRun, str],
        step_id: str,
        resume_data: Optional[Dict[str, Any]],
    ) -> RunResult:
        """
        Continue a suspended run at ``step_id`` with ``resume_data``.

        Always fails with ``StateError`` when the run is not suspended or the
        step does not match the run's active step.
        """
        stored = self.get_run(_run_id_of(run))
        if stored.status != RunStatus.SUSPENDED:
            raise StateError(
                f"Workflow run '{stored.run_id}' is not suspended (status={stored.status.value})"
            )
        if step_id != stored.current_step_id:
            raise StateError(
                f"Step '{step_id}' does not match the active step "
                f"'{stored.current_step_id}' of run '{stored.run_id}'"
            )
        definition = self.repository.get(stored.workflow_id)
        step = definition.get_step(step_id)
        if step is None or step.resume_schema is None:
            raise StateError(f"Step '{step_id}' cannot be resumed")

        resume_data = {} if resume_data is None else resume_data
        validate_payload(resume_data, step.resume_schema, "resumeData")

        expected_version = stored.version
        stored.status = RunStatus.RUNNING
        stored.suspend_payload = None
        stored.resume_data = dict(resume_data)
        logger.info(f"[WorkflowEngine] Resuming run {stored.run_id} at step '{step_id}'")
        return await self._advance(
            stored,
            definition,
            step,
            resume_data=stored.resume_data,
            expected_status=RunStatus.SUSPENDED,
            expected_step_id=step_id,
            expected_version=expected_version,
        )

    async def _advance(
        self,
        run: WorkflowRun,
        definition: WorkflowDefinition,
        step: StepDefinition,
        *,
        resume_data: Optional[Dict[str, Any]],
        expected_status: RunStatus,
        expected_step_id: Optional[str],
        expected_version: int,
    ) -> RunResult:
        steps_report: Dict[str, Dict[str, Any]] = {}
        current: Optional[StepDefinition] = step
        step_input = run.step_input or {}

        try:
            while current is not None:
                run.current_step_id = current.step_id
                run.step_input = step_input
                context = StepContext(
                    run_id=run.run_id,
                    step_id=current.step_id,
                    input_data=dict(step_input),
                    resume_data=resume_data,
                )
                outcome = await self._execute(current, context)

                if isinstance(outcome, Suspended):
                    if current.resume_schema is None:
                        raise _StepFailure(
                            f"Step '{current.step_id}' suspended but declares no resume schema"
                        )
                    self._check(outcome.payload, current.suspend_schema, "suspendPayload")
                    run.status = RunStatus.SUSPENDED
                    run.suspend_payload = outcome.payload
                    run.result = None
                    steps_report[current.step_id] = {
                        "status": RunStatus.SUSPENDED.value,
                        "suspendPayload": outcome.payload,
                    }
                    logger.info(
                        f"[WorkflowEngine] Run {run.run_id} suspended at step '{current.step_id}' "
                        f"(reason={outcome.payload.get('reason', '')})"
                    )
                    break

                self._check(outcome.output, current.output_schema, "output")
                steps_report[current.step_id] = {
                    "status": RunStatus.COMPLETED.value,
                    "output": outcome.output,
                }
                next_step = definition.next_step(current.step_id)
                if next_step is None:
                    self._check(outcome.output, definition.output_schema, "result")
                    run.status = RunStatus.COMPLETED
                    run.result = outcome.output
                    run.suspend_payload = None
                    logger.info(f"[WorkflowEngine] Run {run.run_id} completed")
                    break

                self._check(outcome.output, next_step.input_schema, "inputData")
                step_input = outcome.output
                resume_data = None
                current = next_step
        except _StepFailure as exc:
            run.status = RunStatus.FAILED
            run.error = str(exc)
            run.suspend_payload = None
            run.result = None
            steps_report[run.current_step_id] = {
                "status": RunStatus.FAILED.value,
                "error": run.error,
            }
            logger.error(f"[WorkflowEngine] Run {run.run_id} failed: {run.error}")

        # resume data only lives for the duration of the resume call
        run.resume_data = None
        run.check_invariants()
        swapped = self.store.compare_and_swap(
            run,
            expected_status=expected_status,
            expected_step_id=expected_step_id,
            expected_version=expected_version,
        )
        if not swapped:
            raise StateError(
                f"Workflow run '{run.run_id}' was modified by another request; reload and retry"
            )

        return RunResult(
            run_id=run.run_id,
            workflow_id=run.workflow_id,
            status=run.status,
            steps=steps_report,
            suspended=[run.current_step_id] if run.status == RunStatus.SUSPENDED else [],
            result=run.result,
            error=run.error,
        )

    async def _execute(self, step: StepDefinition, context: StepContext) -> StepOutcome:
        try:
            outcome = step.execute(context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as exc:
            logger.exception(
                f"[WorkflowEngine] Step '{step.step_id}' of run {context.run_id} raised"
            )
            raise _StepFailure(f"Step '{step.step_id}' raised {type(exc).__name__}: {exc}") from exc
        if not isinstance(outcome, (Suspended, Completed)):
            raise _StepFailure(
                f"Step '{step.step_id}' returned {type(outcome).__name__}; expected Suspended or Completed"
            )
        return outcome

    @staticmethod
    def _check(data: Any, schema: Optional[Dict[str, Any]], label: str) -> None:
        try:
            validate_payload(data, schema, label)
        except ValidationError as exc:
            raise _StepFailure(str(exc)) from exc


def _run_id_of(run: Union[WorkflowRun, str]) -> str:
    return run.run_id if isinstance(run, WorkflowRun) else run
