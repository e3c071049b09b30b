import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from support_agent.errors import ValidationError


class RunStatus(str, Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Suspended:
    """A step asked for more input. ``payload`` is handed back to the caller."""

    payload: Dict[str, Any]


@dataclass(frozen=True)
class Completed:
    """A step finished with a typed output."""

    output: Dict[str, Any]


StepOutcome = Union[Suspended, Completed]


@dataclass
class StepContext:
    """
    Everything a step sees when it runs.

    Steps keep no state between invocations; whatever they need to continue
    after a resume lives in ``input_data`` (persisted on the run) and
    ``resume_data`` (supplied by the resume call).
    """

    run_id: str
    step_id: str
    input_data: Dict[str, Any]
    resume_data: Optional[Dict[str, Any]] = None

    def suspend(self, payload: Dict[str, Any]) -> Suspended:
        return Suspended(payload=dict(payload))

    def complete(self, output: Dict[str, Any]) -> Completed:
        return Completed(output=dict(output))


StepExecutor = Callable[[StepContext], Union[StepOutcome, Awaitable[StepOutcome]]]


@dataclass
class StepDefinition:
    """
    Definition of one unit of work within a workflow.

    Attributes:
        step_id: Unique identifier of the step; resume calls address it.
        execute: Callable (sync or async) returning ``Suspended`` or ``Completed``.
        input_schema: JSON schema for the data the step starts with.
        output_schema: JSON schema for the step's completed output.
        resume_schema: JSON schema for resume data. ``None`` means the step
            never suspends and cannot be resumed.
        suspend_schema: JSON schema for the payload handed back on suspension.
    """

    step_id: str
    execute: StepExecutor
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]
    resume_schema: Optional[Dict[str, Any]] = None
    suspend_schema: Optional[Dict[str, Any]] = None
    description: str = ""


@dataclass
class WorkflowDefinition:
    workflow_id: str
    steps: List[StepDefinition]
    input_schema: Dict[str, Any]
    output_schema: Dict[str, Any]
    description: str = ""

    def __post_init__(self):
        if not self.steps:
            raise ValueError(f"Workflow '{self.workflow_id}' must declare at least one step")
        step_ids = [step.step_id for step in self.steps]
        if len(set(step_ids)) != len(step_ids):
            raise ValueError(f"Workflow '{self.workflow_id}' has duplicate step ids")

    @property
    def first_step(self) -> StepDefinition:
        return self.steps[0]

    def get_step(self, step_id: Optional[str]) -> Optional[StepDefinition]:
        return next((step for step in self.steps if step.step_id == step_id), None)

    def next_step(self, step_id: str) -> Optional[StepDefinition]:
        for index, step in enumerate(self.steps):
            if step.step_id == step_id:
                return self.steps[index + 1] if index + 1 < len(self.steps) else None
        return None


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def generate_run_id() -> str:
    """Millisecond timestamp plus a random suffix, never empty."""
    return f"run_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


def is_valid_run_id(run_id: Any) -> bool:
    return isinstance(run_id, str) and bool(run_id.strip())


@dataclass
class WorkflowRun:
    """
    A single execution of a workflow definition.

    ``step_input`` holds the input of the step that is currently active. For
    the first step it equals ``input_data``; in a chain it is the previous
    step's output.
    """

    run_id: str
    workflow_id: str
    status: RunStatus = RunStatus.RUNNING
    current_step_id: Optional[str] = None
    input_data: Optional[Dict[str, Any]] = None
    step_input: Optional[Dict[str, Any]] = None
    resume_data: Optional[Dict[str, Any]] = None
    suspend_payload: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    version: int = 0
    created_at: str = field(default_factory=utc_timestamp)
    updated_at: str = field(default_factory=utc_timestamp)

    @classmethod
    def new(cls, workflow_id: str, run_id: Optional[str] = None) -> "WorkflowRun":
        if run_id is None:
            run_id = generate_run_id()
        if not is_valid_run_id(run_id):
            raise ValidationError("run_id must be a non-empty string", path="runId")
        return cls(run_id=run_id.strip(), workflow_id=workflow_id)

    @property
    def started(self) -> bool:
        return self.current_step_id is not None

    def check_invariants(self) -> None:
        if self.result is not None and self.suspend_payload is not None:
            raise ValueError(
                f"Run {self.run_id} cannot hold both a result and a suspend payload"
            )
        if self.status == RunStatus.COMPLETED and self.result is None:
            raise ValueError(f"Completed run {self.run_id} has no result")
        if self.status == RunStatus.SUSPENDED and self.suspend_payload is None:
            raise ValueError(f"Suspended run {self.run_id} has no suspend payload")

    def snapshot(self) -> Dict[str, Any]:
        return {
            "runId": self.run_id,
            "workflowId": self.workflow_id,
            "status": self.status.value,
            "currentStepId": self.current_step_id,
            "inputData": self.input_data,
            "suspendPayload": self.suspend_payload,
            "result": self.result,
            "error": self.error,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def to_record(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "workflow_id": self.workflow_id,
            "status": self.status.value,
            "current_step_id": self.current_step_id,
            "input_json": _dump(self.input_data),
            "step_input_json": _dump(self.step_input),
            "resume_json": _dump(self.resume_data),
            "suspend_json": _dump(self.suspend_payload),
            "result_json": _dump(self.result),
            "error": self.error,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: Optional[tuple]) -> Optional["WorkflowRun"]:
        if not row:
            return None
        (
            run_id,
            workflow_id,
            status,
            current_step_id,
            input_json,
            step_input_json,
            resume_json,
            suspend_json,
            result_json,
            error,
            version,
            created_at,
            updated_at,
        ) = row
        return cls(
            run_id=run_id,
            workflow_id=workflow_id,
            status=RunStatus(status),
            current_step_id=current_step_id,
            input_data=_load(input_json),
            step_input=_load(step_input_json),
            resume_data=_load(resume_json),
            suspend_payload=_load(suspend_json),
            result=_load(result_json),
            error=error,
            version=int(version),
            created_at=created_at,
            updated_at=updated_at,
        )


def _dump(value: Optional[Dict[str, Any]]) -> Optional[str]:
    return json.dumps(value) if value is not None else None


def _load(value: Optional[str]) -> Optional[Dict[str, Any]]:
    return json.loads(value) if value else None


@dataclass
class RunResult:
    """
    Outcome of a ``start`` or ``resume`` call.

    ``steps`` maps each step that ran during the call to its outcome, and
    ``suspended`` lists the steps now waiting for input.
    """

    run_id: str
    workflow_id: str
    status: RunStatus
    steps: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    suspended: List[str] = field(default_factory=list)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def is_suspended(self) -> bool:
        return self.status == RunStatus.SUSPENDED

    @property
    def is_completed(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def suspend_payload(self) -> Optional[Dict[str, Any]]:
        if not self.suspended:
            return None
        return self.steps.get(self.suspended[0], {}).get("suspendPayload")

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "runId": self.run_id,
            "workflowId": self.workflow_id,
            "status": self.status.value,
            "steps": self.steps,
        }
        if self.suspended:
            payload["suspended"] = list(self.suspended)
        if self.result is not None:
            payload["result"] = self.result
        if self.error:
            payload["error"] = self.error
        return payload
