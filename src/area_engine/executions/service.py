"""Execution lifecycle service.

Creates QUEUED executions for triggered instances and tracks their
progress through RUNNING, RETRY and the terminal states. Completion
listeners are notified when an execution finishes as OK or FAILED.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from area_engine.errors import ExecutionNotFoundError
from area_engine.models import (
    ActionInstance,
    ActivationMode,
    ActivationModeType,
    Execution,
    ExecutionStatus,
)
from area_engine.repositories import ActivationModeRepository, ExecutionRepository

logger = logging.getLogger(__name__)

# listener(execution, result)
CompletionListener = Callable[[Execution, dict[str, Any]], None]


class ExecutionService:
    """Creates and updates execution records."""

    def __init__(
        self,
        execution_repository: ExecutionRepository,
        activation_mode_repository: ActivationModeRepository,
    ):
        self.executions = execution_repository
        self.activation_modes = activation_mode_repository
        self._listeners: list[CompletionListener] = []

    def register_completion_listener(self, listener: CompletionListener) -> None:
        """Register a listener called after an execution completes as OK or FAILED."""
        self._listeners.append(listener)

    def unregister_completion_listener(self, listener: CompletionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify_completion(self, execution: Execution, result: dict[str, Any]) -> None:
        for listener in self._listeners:
            try:
                listener(execution, result)
            except Exception as e:
                logger.error(f"Completion listener failed for execution {execution.id}: {e}")

    def create_execution(
        self,
        instance: ActionInstance,
        activation_mode: ActivationMode | None,
        payload: dict[str, Any],
        correlation_id: str | None,
        dedup_key: str | None = None,
    ) -> Execution:
        """Persist a new QUEUED execution for an instance."""
        execution = Execution(
            action_instance_id=instance.id,
            area_id=instance.area.id,
            activation_mode_id=activation_mode.id if activation_mode else None,
            status=ExecutionStatus.QUEUED,
            attempt=0,
            input_payload=dict(payload or {}),
            correlation_id=correlation_id,
            dedup_key=dedup_key,
        )
        self.executions.insert(execution)
        logger.info(
            f"Created execution {execution.id} for instance {instance.id}",
            extra={"correlation_id": correlation_id, "execution_id": execution.id},
        )
        return execution

    def create_execution_with_activation_type(
        self,
        instance: ActionInstance,
        mode_type: ActivationModeType,
        payload: dict[str, Any],
        correlation_id: str | None,
    ) -> Execution:
        """Create an execution, attributing it to the instance's enabled mode of that type."""
        activation_mode = self.activation_modes.find_enabled_by_instance_and_type(
            instance.id, mode_type
        )
        return self.create_execution(instance, activation_mode, payload, correlation_id)

    def get_execution(self, execution_id: str) -> Execution | None:
        return self.executions.get(execution_id)

    def _require(self, execution_id: str) -> Execution:
        execution = self.executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def mark_started(self, execution_id: str) -> Execution:
        """Move an execution to RUNNING."""
        execution = self._require(execution_id)
        execution.status = ExecutionStatus.RUNNING
        execution.started_at = datetime.now(UTC)
        return self.executions.update(execution)

    def complete_execution(
        self,
        execution_id: str,
        status: ExecutionStatus,
        output_payload: dict[str, Any] | None = None,
        error: dict[str, Any] | None = None,
    ) -> Execution:
        """Record the outcome of a run.

        RETRY re-queues the execution with an incremented attempt counter.
        OK and FAILED are terminal and notify completion listeners.
        """
        execution = self._require(execution_id)
        execution.output_payload = output_payload
        execution.error = error

        if status == ExecutionStatus.RETRY:
            execution.status = ExecutionStatus.RETRY
            execution.attempt += 1
            execution.finished_at = None
        else:
            execution.status = status
            execution.finished_at = datetime.now(UTC)

        self.executions.update(execution)
        logger.info(
            f"Execution {execution.id} finished with status {execution.status.value}",
            extra={"correlation_id": execution.correlation_id, "execution_id": execution.id},
        )

        if status in (ExecutionStatus.OK, ExecutionStatus.FAILED):
            result = {
                "status": execution.status.value,
                "output": output_payload or {},
                "error": error,
            }
            self._notify_completion(execution, result)
        return execution

    def cancel_execution(self, execution_id: str, reason: str = "") -> Execution:
        execution = self._require(execution_id)
        if execution.status.is_terminal:
            return execution
        execution.status = ExecutionStatus.CANCELED
        execution.finished_at = datetime.now(UTC)
        if reason:
            execution.error = {"message": reason}
        return self.executions.update(execution)

    def list_by_correlation(self, correlation_id: str) -> list[Execution]:
        return self.executions.find_by_correlation(correlation_id)

    def get_execution_statistics(self) -> dict[str, int]:
        """Count executions per status; every status is present."""
        counts = self.executions.count_by_status()
        return {status.value: counts.get(status.value, 0) for status in ExecutionStatus}
