import logging
import sqlite3
from pathlib import Path
from typing import Optional

from support_agent.errors import StateError
from support_agent.workflows.models import RunStatus, WorkflowRun, utc_timestamp

logger = logging.getLogger("uvicorn.error")

_COLUMNS = (
    "run_id, workflow_id, status, current_step_id, input_json, step_input_json, "
    "resume_json, suspend_json, result_json, error, version, created_at, updated_at"
)


class WorkflowRunStore:
    """
    Lightweight SQLite-backed store used to persist workflow runs.

    Runs are written with compare-and-swap on ``(status, current_step_id,
    version)`` so a resume never applies to a run another request already
    mutated.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS workflow_runs (
                    run_id TEXT PRIMARY KEY,
                    workflow_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    current_step_id TEXT,
                    input_json TEXT,
                    step_input_json TEXT,
                    resume_json TEXT,
                    suspend_json TEXT,
                    result_json TEXT,
                    error TEXT,
                    version INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )
            conn.commit()

    def load_run(self, run_id: str) -> Optional[WorkflowRun]:
        with self._connect() as conn:
            cur = conn.execute(
                f"SELECT {_COLUMNS} FROM workflow_runs WHERE run_id = ?",
                (run_id,),
            )
            row = cur.fetchone()
        return WorkflowRun.from_row(row)

    def insert_run(self, run: WorkflowRun) -> None:
        record = run.to_record()
        try:
            with self._connect() as conn:
                conn.execute(
                    f"""
                    INSERT INTO workflow_runs ({_COLUMNS})
                    VALUES (:run_id, :workflow_id, :status, :current_step_id, :input_json,
                            :step_input_json, :resume_json, :suspend_json, :result_json,
                            :error, :version, :created_at, :updated_at)
                    """,
                    record,
                )
                conn.commit()
        except sqlite3.IntegrityError as exc:
            raise StateError(f"Workflow run '{run.run_id}' already exists") from exc

    def compare_and_swap(
        self,
        run: WorkflowRun,
        *,
        expected_status: RunStatus,
        expected_step_id: Optional[str],
        expected_version: int,
    ) -> bool:
        """
        Persist ``run`` only if the stored row still has the expected status,
        step and version. Returns False when another writer got there first.
        """
        run.version = expected_version + 1
        run.updated_at = utc_timestamp()
        record = run.to_record()
        record.update(
            {
                "expected_status": expected_status.value,
                "expected_step_id": expected_step_id,
                "expected_version": expected_version,
            }
        )
        with self._connect() as conn:
            cur = conn.execute(
                """
                UPDATE workflow_runs SET
                    status=:status,
                    current_step_id=:current_step_id,
                    input_json=:input_json,
                    step_input_json=:step_input_json,
                    resume_json=:resume_json,
                    suspend_json=:suspend_json,
                    result_json=:result_json,
                    error=:error,
                    version=:version,
                    updated_at=:updated_at
                WHERE run_id=:run_id
                  AND status=:expected_status
                  AND current_step_id IS :expected_step_id
                  AND version=:expected_version
                """,
                record,
            )
            conn.commit()
            swapped = cur.rowcount == 1
        if not swapped:
            run.version = expected_version
            logger.warning(
                f"[WorkflowRunStore] Concurrent update detected for run {run.run_id} "
                f"(expected status={expected_status.value}, step={expected_step_id}, version={expected_version})"
            )
        return swapped
