"""Trigger entry point: turns activations into executions and follows action links."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from area_engine.errors import TriggerError
from area_engine.events import EventBus
from area_engine.executions import ExecutionService
from area_engine.models import (
    ActionInstance,
    ActivationModeType,
    AreaEventMessage,
    Execution,
)
from area_engine.repositories import ActionLinkRepository

logger = logging.getLogger(__name__)

SOURCE_TRIGGER_SERVICE = "trigger_service"
SOURCE_MANUAL_TRIGGER = "manual_trigger"


class ExecutionTriggerService:
    """Creates executions for triggered instances and propagates across links.

    A single top-level trigger reuses one correlation id for its whole
    fan-out and visits each instance at most once, so link cycles end.
    """

    def __init__(
        self,
        execution_service: ExecutionService,
        event_bus: EventBus,
        link_repository: ActionLinkRepository,
    ):
        self.execution_service = execution_service
        self.event_bus = event_bus
        self.links = link_repository

    def trigger_area_execution(
        self,
        instance: ActionInstance,
        mode: ActivationModeType,
        payload: dict[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> Execution | None:
        """Trigger an instance and everything reachable through its links.

        Returns:
            The execution created for ``instance`` itself, or None when the
            instance is event-only, disabled, or its area is disabled

        Raises:
            TriggerError: If creating/publishing the execution or loading
                links of ``instance`` fails. Failures on linked targets
                are logged and do not raise.
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        try:
            return self._trigger_instance(instance, mode, payload, correlation_id, set())
        except Exception as e:
            logger.error(
                f"Failed to trigger AREA execution for instance {instance.id}: {e}",
                extra={"correlation_id": correlation_id, "action_instance_id": instance.id},
            )
            raise TriggerError(
                f"Failed to trigger AREA execution: {e}", instance_id=instance.id, cause=e
            ) from e

    def trigger_manual_execution(
        self,
        instance: ActionInstance,
        payload: dict[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> Execution:
        """Create and announce a MANUAL execution without following links.

        Raises:
            TriggerError: If the execution cannot be created or published
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        try:
            return self._create_and_publish(
                instance, ActivationModeType.MANUAL, payload, correlation_id, SOURCE_MANUAL_TRIGGER
            )
        except Exception as e:
            logger.error(
                f"Failed to trigger manual execution for instance {instance.id}: {e}",
                extra={"correlation_id": correlation_id, "action_instance_id": instance.id},
            )
            raise TriggerError(
                f"Failed to trigger manual execution: {e}", instance_id=instance.id, cause=e
            ) from e

    def trigger_linked_actions(
        self,
        instance: ActionInstance,
        payload: dict[str, Any],
        *,
        correlation_id: str | None = None,
    ) -> int:
        """Trigger only the link targets of an instance. Returns how many were triggered."""
        correlation_id = correlation_id or str(uuid.uuid4())
        return self._propagate(instance, payload, correlation_id, {instance.id})

    def _trigger_instance(
        self,
        instance: ActionInstance,
        mode: ActivationModeType,
        payload: dict[str, Any],
        correlation_id: str,
        visited: set[str],
    ) -> Execution | None:
        if not self._claim(instance, correlation_id, visited):
            return None
        return self._activate(instance, mode, payload, correlation_id, visited)

    def _claim(self, instance: ActionInstance, correlation_id: str, visited: set[str]) -> bool:
        """Mark an instance visited; False if it was already visited or is disabled."""
        if instance.id in visited:
            logger.debug(
                f"Instance {instance.id} already triggered in this fan-out, skipping",
                extra={"correlation_id": correlation_id},
            )
            return False
        visited.add(instance.id)

        if not instance.area.enabled:
            logger.warning(
                f"Area {instance.area.id} is disabled, not triggering instance {instance.id}"
            )
            return False
        if not instance.enabled:
            logger.warning(f"Action instance {instance.id} is disabled, not triggering")
            return False
        return True

    def _activate(
        self,
        instance: ActionInstance,
        mode: ActivationModeType,
        payload: dict[str, Any],
        correlation_id: str,
        visited: set[str],
    ) -> Execution | None:
        execution = None
        if instance.definition.is_executable:
            execution = self._create_and_publish(
                instance, mode, payload, correlation_id, SOURCE_TRIGGER_SERVICE
            )
        else:
            logger.debug(f"Instance {instance.id} is event-only, no execution created")

        self._propagate(instance, payload, correlation_id, visited)
        return execution

    def _propagate(
        self,
        instance: ActionInstance,
        payload: dict[str, Any],
        correlation_id: str,
        visited: set[str],
    ) -> int:
        """Trigger each link target in link order, isolating per-link failures.

        Returns how many targets were triggered; skipped targets do not count.
        """
        links = self.links.find_by_source(instance.id)
        triggered = 0
        for link in links:
            target = link.target
            if target is None:
                logger.warning(
                    f"Link {link.source_instance_id} -> {link.target_instance_id} "
                    "points to a missing instance"
                )
                continue
            if not self._claim(target, correlation_id, visited):
                continue
            try:
                self._activate(target, ActivationModeType.MANUAL, payload, correlation_id, visited)
                triggered += 1
            except Exception as e:
                logger.error(
                    f"Failed to trigger linked instance {target.id} from {instance.id}: {e}",
                    extra={"correlation_id": correlation_id, "action_instance_id": target.id},
                )
        if links:
            logger.info(
                f"Propagated trigger from {instance.id} to {triggered}/{len(links)} linked actions",
                extra={"correlation_id": correlation_id},
            )
        return triggered

    def _create_and_publish(
        self,
        instance: ActionInstance,
        mode: ActivationModeType,
        payload: dict[str, Any],
        correlation_id: str,
        source: str,
    ) -> Execution:
        execution = self.execution_service.create_execution_with_activation_type(
            instance, mode, payload, correlation_id
        )
        message = AreaEventMessage(
            execution_id=execution.id,
            action_instance_id=instance.id,
            area_id=instance.area.id,
            event_type=mode.event_type,
            source=source,
            payload=dict(payload or {}),
            correlation_id=correlation_id,
            metadata={
                "activation_mode": mode.value,
                "action_key": instance.definition.key,
                "service": instance.definition.service,
            },
        )
        self.event_bus.publish_area_event(message)
        logger.info(
            f"Triggered {mode.event_type} execution {execution.id} for instance {instance.id}",
            extra={
                "correlation_id": correlation_id,
                "execution_id": execution.id,
                "action_instance_id": instance.id,
                "area_id": instance.area.id,
            },
        )
        return execution
