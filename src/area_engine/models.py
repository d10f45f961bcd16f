"""Domain models for areas, action instances, activation modes and executions."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "yes", "1", "on"}
_FALSE_STRINGS = {"false", "no", "0", "off"}


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ActivationModeType(str, Enum):
    """How an action instance gets activated."""

    CRON = "CRON"
    WEBHOOK = "WEBHOOK"
    POLL = "POLL"
    CHAIN = "CHAIN"
    MANUAL = "MANUAL"

    @property
    def event_type(self) -> str:
        """Lower-case name used as the event type of published area events."""
        return self.value.lower()


class DedupStrategy(str, Enum):
    """Deduplication strategy for an activation mode."""

    NONE = "NONE"
    ID = "ID"
    CONTENT = "CONTENT"


class ExecutionStatus(str, Enum):
    """Execution lifecycle status."""

    QUEUED = "queued"
    RUNNING = "running"
    OK = "ok"
    RETRY = "retry"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.OK, ExecutionStatus.FAILED, ExecutionStatus.CANCELED)


class Area(BaseModel):
    """A user-defined automation: a graph of actions and reactions."""

    id: str = Field(default_factory=_new_id, description="Area identifier")
    name: str = Field(..., description="Area name")
    description: str = Field("", description="Area description")
    enabled: bool = Field(True, description="Whether the area is active")
    user_id: str | None = Field(None, description="Owning user")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ActionDefinition(BaseModel):
    """Catalogue entry describing an action or reaction type."""

    id: str = Field(default_factory=_new_id)
    key: str = Field(..., description="Stable type identifier (e.g. 'github.push')")
    service: str = Field(..., description="Provider key (e.g. 'github')")
    name: str = Field("", description="Human readable name")
    description: str = Field("")
    is_event_capable: bool = Field(False, description="Can act as an event source")
    is_executable: bool = Field(False, description="Can be executed as a reaction")
    default_poll_interval_seconds: int | None = Field(None, ge=1)


class ReactionParams(BaseModel):
    """Typed view of the chain-related keys stored in an instance's params."""

    order: int = 0
    condition: dict[str, Any] | None = None
    mapping: dict[str, Any] | None = None
    continue_on_error: bool = True

    @classmethod
    def from_params(cls, params: dict[str, Any] | None) -> ReactionParams:
        """Parse leniently; malformed values fall back to their defaults."""
        params = params or {}

        order = params.get("order", 0)
        if order is None:
            order = 0
        elif isinstance(order, bool):
            logger.warning(f"Invalid reaction order {order!r}, using 0")
            order = 0
        elif not isinstance(order, int):
            try:
                order = int(order)
            except (TypeError, ValueError):
                logger.warning(f"Invalid reaction order {order!r}, using 0")
                order = 0

        condition = params.get("condition")
        if not isinstance(condition, dict) or not condition:
            condition = None

        mapping = params.get("mapping")
        if not isinstance(mapping, dict) or not mapping:
            mapping = None

        continue_on_error = params.get("continue_on_error", True)
        if isinstance(continue_on_error, str):
            lowered = continue_on_error.strip().lower()
            if lowered in _TRUE_STRINGS:
                continue_on_error = True
            elif lowered in _FALSE_STRINGS:
                continue_on_error = False
            else:
                continue_on_error = True
        elif not isinstance(continue_on_error, bool):
            continue_on_error = True

        return cls(
            order=order,
            condition=condition,
            mapping=mapping,
            continue_on_error=continue_on_error,
        )


class ActionInstance(BaseModel):
    """A configured action or reaction living inside an area."""

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., description="Instance name")
    area: Area
    definition: ActionDefinition
    params: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def area_id(self) -> str:
        return self.area.id

    @property
    def reaction_params(self) -> ReactionParams:
        return ReactionParams.from_params(self.params)


class ActivationMode(BaseModel):
    """A trigger configuration attached to an action instance."""

    id: str = Field(default_factory=_new_id)
    action_instance: ActionInstance
    type: ActivationModeType
    config: dict[str, Any] = Field(default_factory=dict)
    enabled: bool = True
    dedup: DedupStrategy = DedupStrategy.NONE
    max_concurrency: int | None = Field(None, ge=1)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def cron_expression(self) -> str | None:
        value = self.config.get("cron_expression")
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


class ActionLink(BaseModel):
    """Directed edge from a source instance to a target instance."""

    source_instance_id: str
    target_instance_id: str
    area_id: str
    mapping: dict[str, Any] | None = None
    condition: dict[str, Any] | None = None
    link_type: str = "chain"
    order: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    target: ActionInstance | None = Field(None, exclude=True)


class Execution(BaseModel):
    """One queued run of an executable instance."""

    id: str = Field(default_factory=_new_id)
    action_instance_id: str
    area_id: str
    activation_mode_id: str | None = None
    status: ExecutionStatus = ExecutionStatus.QUEUED
    attempt: int = Field(0, ge=0)
    input_payload: dict[str, Any] = Field(default_factory=dict)
    output_payload: dict[str, Any] | None = None
    error: dict[str, Any] | None = None
    correlation_id: str | None = None
    dedup_key: str | None = None
    queued_at: datetime = Field(default_factory=_utcnow)
    started_at: datetime | None = None
    finished_at: datetime | None = None


class AreaEventMessage(BaseModel):
    """Event published to the worker stream for each created execution."""

    execution_id: str
    action_instance_id: str
    area_id: str
    event_type: str
    source: str
    payload: dict[str, Any] = Field(default_factory=dict)
    correlation_id: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
