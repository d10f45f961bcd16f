"""Wires the AREA engine components together from settings."""

from __future__ import annotations

import logging

from area_engine.cache import Cache, create_cache, get_cache
from area_engine.config import Settings, get_settings
from area_engine.events import EventBus, RedisEventBus, create_event_bus, get_event_bus
from area_engine.executions import ExecutionService
from area_engine.orchestration import (
    ActivationOrchestrator,
    DataMappingService,
    ExecutionTriggerService,
    ReactionChainService,
)
from area_engine.repositories import (
    ActionDefinitionRepository,
    ActionInstanceRepository,
    ActionLinkRepository,
    ActivationModeRepository,
    AreaRepository,
    ExecutionRepository,
    init_schema,
)
from area_engine.scheduler import ActivationScheduler, CronSchedulerService
from area_engine.state import DatabaseBackend, create_backend, get_database
from area_engine.webhooks import DeduplicationService, SignatureValidator, WebhookIngestionService

logger = logging.getLogger(__name__)


class AreaEngine:
    """Holds one fully wired set of services sharing a backend, store and bus."""

    def __init__(
        self,
        settings: Settings,
        backend: DatabaseBackend,
        cache: Cache,
        event_bus: EventBus,
        scheduler: ActivationScheduler | None = None,
    ):
        self.settings = settings
        self.backend = backend
        self.cache = cache
        self.event_bus = event_bus

        init_schema(backend)

        self.areas = AreaRepository(backend)
        self.definitions = ActionDefinitionRepository(backend)
        self.instances = ActionInstanceRepository(backend)
        self.activation_modes = ActivationModeRepository(backend, self.instances)
        self.links = ActionLinkRepository(backend, self.instances)
        self.execution_records = ExecutionRepository(backend)

        self.executions = ExecutionService(self.execution_records, self.activation_modes)
        self.mapping = DataMappingService()
        self.trigger = ExecutionTriggerService(self.executions, event_bus, self.links)
        self.chain = ReactionChainService(self.instances, self.areas, self.trigger, self.mapping)
        self.scheduler = scheduler or CronSchedulerService(
            self.activation_modes, self.trigger, timezone=settings.scheduler_timezone
        )
        self.orchestrator = ActivationOrchestrator(
            self.areas, self.activation_modes, self.scheduler, self.chain
        )
        self.executions.register_completion_listener(self.orchestrator.handle_execution_completion)

        self.signatures = SignatureValidator()
        self.dedup = DeduplicationService.from_settings(cache, settings)
        self.webhooks = WebhookIngestionService(
            self.signatures, self.dedup, self.instances, self.activation_modes, self.trigger
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        backend: DatabaseBackend | None = None,
        cache: Cache | None = None,
        event_bus: EventBus | None = None,
    ) -> AreaEngine:
        """Build an engine, creating any collaborator not passed in.

        Without explicit settings the process-wide backend, store and bus
        are shared; with settings, fresh ones are built from them.
        """
        if settings is None:
            settings = get_settings()
            backend = backend or get_database()
            cache = cache or get_cache()
            event_bus = event_bus or get_event_bus()
        else:
            backend = backend or create_backend(settings.database_url)
            cache = cache or create_cache(settings)
            event_bus = event_bus or create_event_bus(settings)

        return cls(settings, backend, cache, event_bus)

    def start(self) -> None:
        """Start the scheduler and load cron activations."""
        if isinstance(self.event_bus, RedisEventBus):
            self.event_bus.initialize_stream()
        self.scheduler.start()
        self.orchestrator.initialize()
        logger.info("AREA engine started")

    def shutdown(self) -> None:
        self.orchestrator.shutdown()
        self.backend.close()
        logger.info("AREA engine stopped")

    def set_area_enabled(self, area_id: str, enabled: bool):
        """Persist an area toggle and cascade it to the area's cron schedules."""
        area = self.areas.get(area_id)
        if area is None:
            return None
        area.enabled = enabled
        self.areas.save(area)
        self.orchestrator.handle_area_state_change(area, enabled)
        return area

    def set_activation_mode_enabled(self, mode_id: str, enabled: bool):
        """Persist an activation mode toggle and update its schedule."""
        mode = self.activation_modes.get(mode_id)
        if mode is None:
            return None
        mode.enabled = enabled
        self.activation_modes.save(mode)
        self.orchestrator.handle_activation_mode_change(mode, enabled)
        return mode
