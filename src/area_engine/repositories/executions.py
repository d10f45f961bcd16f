"""Execution repository."""

import logging
from datetime import UTC, datetime

from area_engine.models import Execution, ExecutionStatus
from area_engine.state import DatabaseBackend

from .schema import _dump_json, _format_datetime, _load_json, _parse_datetime

logger = logging.getLogger(__name__)


class ExecutionRepository:
    """Persists execution records."""

    def __init__(self, backend: DatabaseBackend):
        self.backend = backend

    def insert(self, execution: Execution) -> Execution:
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO executions
                (id, action_instance_id, area_id, activation_mode_id, status, attempt,
                 input_payload, output_payload, error, correlation_id, dedup_key,
                 queued_at, started_at, finished_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    execution.id,
                    execution.action_instance_id,
                    execution.area_id,
                    execution.activation_mode_id,
                    execution.status.value,
                    execution.attempt,
                    _dump_json(execution.input_payload),
                    _dump_json(execution.output_payload),
                    _dump_json(execution.error),
                    execution.correlation_id,
                    execution.dedup_key,
                    _format_datetime(execution.queued_at),
                    _format_datetime(execution.started_at),
                    _format_datetime(execution.finished_at),
                ),
            )
        return execution

    def update(self, execution: Execution) -> Execution:
        with self.backend.transaction():
            self.backend.execute(
                """
                UPDATE executions
                SET status = ?, attempt = ?, output_payload = ?, error = ?,
                    started_at = ?, finished_at = ?
                WHERE id = ?
                """,
                (
                    execution.status.value,
                    execution.attempt,
                    _dump_json(execution.output_payload),
                    _dump_json(execution.error),
                    _format_datetime(execution.started_at),
                    _format_datetime(execution.finished_at),
                    execution.id,
                ),
            )
        return execution

    def get(self, execution_id: str) -> Execution | None:
        row = self.backend.fetchone("SELECT * FROM executions WHERE id = ?", (execution_id,))
        return self._row_to_execution(row) if row else None

    def find_by_correlation(self, correlation_id: str) -> list[Execution]:
        rows = self.backend.fetchall(
            "SELECT * FROM executions WHERE correlation_id = ? ORDER BY queued_at, rowid",
            (correlation_id,),
        )
        return [self._row_to_execution(row) for row in rows]

    def find_by_instance(self, instance_id: str, limit: int = 50) -> list[Execution]:
        rows = self.backend.fetchall(
            """
            SELECT * FROM executions WHERE action_instance_id = ?
            ORDER BY queued_at DESC LIMIT ?
            """,
            (instance_id, limit),
        )
        return [self._row_to_execution(row) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        rows = self.backend.fetchall(
            "SELECT status, COUNT(*) AS total FROM executions GROUP BY status"
        )
        return {row["status"]: row["total"] for row in rows}

    def _row_to_execution(self, row: dict) -> Execution:
        return Execution(
            id=row["id"],
            action_instance_id=row["action_instance_id"],
            area_id=row["area_id"],
            activation_mode_id=row.get("activation_mode_id"),
            status=ExecutionStatus(row["status"]),
            attempt=row.get("attempt") or 0,
            input_payload=_load_json(row.get("input_payload"), {}),
            output_payload=_load_json(row.get("output_payload")),
            error=_load_json(row.get("error")),
            correlation_id=row.get("correlation_id"),
            dedup_key=row.get("dedup_key"),
            queued_at=_parse_datetime(row.get("queued_at")) or datetime.now(UTC),
            started_at=_parse_datetime(row.get("started_at")),
            finished_at=_parse_datetime(row.get("finished_at")),
        )
