"""Activation orchestration: keeps schedules consistent with area and mode state."""

from __future__ import annotations

import logging
from typing import Any

from area_engine.models import ActivationMode, ActivationModeType, Area, Execution
from area_engine.repositories import ActivationModeRepository, AreaRepository
from area_engine.scheduler import ActivationScheduler

from .chain import ReactionChainService, is_chain_execution

logger = logging.getLogger(__name__)


class ActivationOrchestrator:
    """Reacts to lifecycle changes of areas, activation modes and executions.

    Every handler is best-effort: failures are logged, never raised.
    """

    def __init__(
        self,
        area_repository: AreaRepository,
        activation_mode_repository: ActivationModeRepository,
        scheduler: ActivationScheduler,
        chain_service: ReactionChainService,
    ):
        self.areas = area_repository
        self.activation_modes = activation_mode_repository
        self.scheduler = scheduler
        self.chain = chain_service

    def initialize(self) -> None:
        logger.info("Initializing activation orchestrator")
        self.initialize_cron_activations()

    def initialize_cron_activations(self) -> int:
        """Schedule every enabled CRON mode. Returns how many were scheduled."""
        try:
            modes = self.activation_modes.find_by_type_and_enabled(ActivationModeType.CRON, True)
        except Exception as e:
            logger.error(f"Failed to load cron activation modes: {e}")
            return 0

        scheduled = 0
        for mode in modes:
            try:
                self.scheduler.schedule_activation_mode(mode)
                scheduled += 1
            except Exception as e:
                logger.error(
                    f"Failed to schedule cron activation {mode.id}: {e}",
                    extra={"activation_mode_id": mode.id},
                )
        logger.info(f"Initialized {scheduled}/{len(modes)} cron activations")
        return scheduled

    def handle_area_state_change(self, area: Area, enabled: bool) -> None:
        """Schedule or cancel the CRON modes of an area after it was toggled."""
        try:
            modes = [
                mode
                for mode in self.activation_modes.find_all_enabled()
                if mode.action_instance.area.id == area.id
                and mode.type == ActivationModeType.CRON
            ]
            for mode in modes:
                if enabled and mode.enabled:
                    self.scheduler.schedule_activation_mode(mode)
                else:
                    self.scheduler.cancel_scheduled_task(mode.id)
            logger.info(
                f"Area {area.id} {'enabled' if enabled else 'disabled'}, "
                f"updated {len(modes)} cron activations",
                extra={"area_id": area.id},
            )
        except Exception as e:
            logger.error(f"Failed to handle state change of area {area.id}: {e}")

    def handle_activation_mode_change(self, mode: ActivationMode, enabled: bool) -> None:
        try:
            if mode.type != ActivationModeType.CRON:
                return
            if enabled:
                self.scheduler.reschedule_activation_mode(mode)
            else:
                self.scheduler.cancel_scheduled_task(mode.id)
        except Exception as e:
            logger.error(
                f"Failed to handle change of activation mode {mode.id}: {e}",
                extra={"activation_mode_id": mode.id},
            )

    def handle_execution_completion(self, execution: Execution, result: dict[str, Any]) -> None:
        """Start the area's reaction chain if it has an enabled CHAIN mode.

        Executions created by a chain run never start another one.
        """
        if is_chain_execution(execution):
            logger.debug(
                f"Execution {execution.id} belongs to a reaction chain, not chaining again",
                extra={"correlation_id": execution.correlation_id},
            )
            return
        try:
            chain_modes = self.activation_modes.find_enabled_by_area_and_type(
                execution.area_id, ActivationModeType.CHAIN
            )
            if not chain_modes:
                return
            logger.info(
                f"Execution {execution.id} completed, triggering reaction chain",
                extra={"correlation_id": execution.correlation_id, "area_id": execution.area_id},
            )
            self.chain.trigger_chain_reaction(execution, result)
        except Exception as e:
            logger.error(f"Failed to handle completion of execution {execution.id}: {e}")

    def get_activation_statistics(self) -> dict[str, Any]:
        try:
            counts = {mode_type.value: 0 for mode_type in ActivationModeType}
            for mode in self.activation_modes.find_all_enabled():
                counts[mode.type.value] += 1
            return {
                "total_areas": self.areas.count(),
                "enabled_areas": self.areas.count_enabled(),
                "activation_modes": counts,
                "active_cron_tasks": self.scheduler.get_active_tasks_count(),
                "system_status": "running",
            }
        except Exception as e:
            logger.error(f"Failed to get activation statistics: {e}")
            return {
                "error": "Failed to get statistics",
                "message": str(e),
                "system_status": "error",
            }

    def shutdown(self) -> None:
        logger.info("Shutting down activation orchestrator")
        try:
            self.scheduler.shutdown()
        except Exception as e:
            logger.error(f"Failed to shut down scheduler: {e}")
