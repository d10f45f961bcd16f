"""Reaction chain processing.

Runs every enabled, executable instance of an area in ``order``, one after
another. Each reaction may carry a condition (skip when false), a mapping
(reshape the payload) and ``continue_on_error`` (stop or go on after a
failed trigger). Successful steps enrich the payload handed to the next.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel

from area_engine.errors import ChainError
from area_engine.models import ActionInstance, Area, Execution
from area_engine.repositories import ActionInstanceRepository, AreaRepository

from .mapping import DataMappingService
from .trigger import ExecutionTriggerService

logger = logging.getLogger(__name__)

# Payload key carried by every execution a chain run creates
CHAIN_TRIGGER_KEY = "trigger_execution_id"


class ChainStepStatus(str, Enum):
    """Status of a reaction step."""

    TRIGGERED = "triggered"
    SKIPPED = "skipped"
    FAILED = "failed"


class ChainStepResult(BaseModel):
    """Outcome of one reaction in a chain run."""

    instance_id: str
    name: str
    status: ChainStepStatus
    execution_id: str | None = None
    error: str | None = None


def is_chain_execution(execution: Execution) -> bool:
    """Whether the execution was created by a reaction chain run."""
    return CHAIN_TRIGGER_KEY in (execution.input_payload or {})


def _next_chain_step(payload: dict[str, Any]) -> int:
    step = payload.get("chain_step")
    if isinstance(step, int) and not isinstance(step, bool):
        return step + 1
    return 1


class ReactionChainService:
    """Executes the ordered reactions of an area."""

    def __init__(
        self,
        instance_repository: ActionInstanceRepository,
        area_repository: AreaRepository,
        trigger_service: ExecutionTriggerService,
        mapping_service: DataMappingService,
    ):
        self.instances = instance_repository
        self.areas = area_repository
        self.trigger = trigger_service
        self.mapping = mapping_service

    def process_reaction_chain(
        self,
        area: Area,
        initial_payload: dict[str, Any],
        correlation_id: str | None = None,
    ) -> list[ChainStepResult]:
        """Run the area's reactions in order.

        Raises:
            ChainError: If the reactions of the area cannot be loaded
        """
        try:
            reactions = [
                instance
                for instance in self.instances.find_enabled_by_area(area.id)
                if instance.definition.is_executable
            ]
        except Exception as e:
            logger.error(f"Failed to load reactions for area {area.id}: {e}")
            raise ChainError(
                f"Failed to process reaction chain: {e}", area_id=area.id, cause=e
            ) from e

        # sorted() is stable: equal orders keep repository order
        reactions = sorted(reactions, key=lambda r: r.reaction_params.order)
        logger.info(
            f"Processing reaction chain for area {area.id} with {len(reactions)} reactions",
            extra={"correlation_id": correlation_id, "area_id": area.id},
        )

        results: list[ChainStepResult] = []
        payload = dict(initial_payload or {})

        for reaction in reactions:
            params = reaction.reaction_params

            if not self._condition_passes(reaction, payload, params.condition):
                results.append(
                    ChainStepResult(
                        instance_id=reaction.id,
                        name=reaction.name,
                        status=ChainStepStatus.SKIPPED,
                    )
                )
                continue

            mapped = self._map_payload(reaction, payload, params.mapping)

            try:
                execution = self.trigger.trigger_manual_execution(
                    reaction, mapped, correlation_id=correlation_id
                )
            except Exception as e:
                logger.error(
                    f"Reaction {reaction.name} ({reaction.id}) failed: {e}",
                    extra={"correlation_id": correlation_id, "action_instance_id": reaction.id},
                )
                results.append(
                    ChainStepResult(
                        instance_id=reaction.id,
                        name=reaction.name,
                        status=ChainStepStatus.FAILED,
                        error=str(e),
                    )
                )
                if params.continue_on_error:
                    continue
                logger.warning(
                    f"Stopping reaction chain for area {area.id} after {reaction.name}",
                    extra={"correlation_id": correlation_id, "area_id": area.id},
                )
                break

            results.append(
                ChainStepResult(
                    instance_id=reaction.id,
                    name=reaction.name,
                    status=ChainStepStatus.TRIGGERED,
                    execution_id=execution.id,
                )
            )
            payload = self._enrich(payload, reaction, execution)

        return results

    def trigger_chain_reaction(
        self, execution: Execution, execution_result: dict[str, Any]
    ) -> list[ChainStepResult]:
        """Start the area's chain from a completed execution.

        Raises:
            ChainError: If the execution's instance or area is missing, or
                the chain cannot be processed
        """
        try:
            instance = self.instances.get(execution.action_instance_id)
            if instance is None:
                raise ValueError(f"Action instance {execution.action_instance_id} not found")
            area = self.areas.get(execution.area_id) or instance.area

            chain_payload = dict(execution.input_payload or {})
            chain_payload[CHAIN_TRIGGER_KEY] = execution.id
            chain_payload["trigger_result"] = execution_result
            chain_payload["source_action"] = instance.name

            return self.process_reaction_chain(area, chain_payload, execution.correlation_id)
        except Exception as e:
            logger.error(f"Failed to trigger chain reaction for execution {execution.id}: {e}")
            raise ChainError(
                f"Failed to trigger chain reaction: {e}", area_id=execution.area_id, cause=e
            ) from e

    def _condition_passes(
        self, reaction: ActionInstance, payload: dict[str, Any], condition: dict | None
    ) -> bool:
        if not condition:
            return True
        try:
            passed = self.mapping.evaluate_condition(payload, condition)
        except Exception as e:
            logger.warning(f"Condition of reaction {reaction.name} failed to evaluate: {e}")
            return False
        if not passed:
            logger.debug(f"Condition not met for reaction {reaction.name}, skipping")
        return passed

    def _map_payload(
        self, reaction: ActionInstance, payload: dict[str, Any], mapping: dict | None
    ) -> dict[str, Any]:
        if not mapping:
            return payload
        try:
            mapped = self.mapping.apply_mapping(payload, mapping)
        except Exception as e:
            logger.warning(
                f"Mapping of reaction {reaction.name} failed, using original payload: {e}"
            )
            return payload
        # a mapping must not strip the chain marker, or completing the
        # reaction would start the chain again
        if CHAIN_TRIGGER_KEY in payload and CHAIN_TRIGGER_KEY not in mapped:
            mapped = {**mapped, CHAIN_TRIGGER_KEY: payload[CHAIN_TRIGGER_KEY]}
        return mapped

    def _enrich(
        self, payload: dict[str, Any], reaction: ActionInstance, execution: Execution
    ) -> dict[str, Any]:
        enriched = dict(payload)
        enriched["previous_execution_id"] = str(execution.id)
        enriched["previous_reaction_name"] = reaction.name
        enriched["chain_step"] = _next_chain_step(payload)
        enriched["previous_result"] = {
            "status": "queued",
            "execution_id": str(execution.id),
            "reaction_type": reaction.definition.key,
        }
        return enriched
