"""Pytest configuration and fixtures."""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from area_engine.events import MemoryEventBus  # noqa: E402
from area_engine.executions import ExecutionService  # noqa: E402
from area_engine.models import (  # noqa: E402
    ActionDefinition,
    ActionInstance,
    ActionLink,
    ActivationMode,
    ActivationModeType,
    Area,
)
from area_engine.orchestration import ExecutionTriggerService  # noqa: E402
from area_engine.repositories import (  # noqa: E402
    ActionDefinitionRepository,
    ActionInstanceRepository,
    ActionLinkRepository,
    ActivationModeRepository,
    AreaRepository,
    ExecutionRepository,
    init_schema,
)
from area_engine.state import SQLiteBackend  # noqa: E402


class GraphFactory:
    """Persists areas, definitions, instances, modes and links for tests."""

    def __init__(self, backend):
        self.areas = AreaRepository(backend)
        self.definitions = ActionDefinitionRepository(backend)
        self.instances = ActionInstanceRepository(backend)
        self.modes = ActivationModeRepository(backend, self.instances)
        self.links = ActionLinkRepository(backend, self.instances)
        self._definition_count = 0

    def area(self, name="Test Area", enabled=True) -> Area:
        return self.areas.save(Area(name=name, enabled=enabled))

    def definition(
        self, key=None, service="github", executable=True, event_capable=False
    ) -> ActionDefinition:
        self._definition_count += 1
        key = key or f"{service}.action_{self._definition_count}"
        return self.definitions.save(
            ActionDefinition(
                key=key,
                service=service,
                name=key,
                is_executable=executable,
                is_event_capable=event_capable,
            )
        )

    def instance(
        self,
        area,
        definition=None,
        name="instance",
        params=None,
        enabled=True,
    ) -> ActionInstance:
        definition = definition or self.definition()
        return self.instances.save(
            ActionInstance(
                name=name,
                area=area,
                definition=definition,
                params=params or {},
                enabled=enabled,
            )
        )

    def reaction(self, area, name, **params) -> ActionInstance:
        return self.instance(
            area, self.definition(executable=True), name=name, params=params
        )

    def event_source(self, area, name="source", service="github", key=None) -> ActionInstance:
        definition = self.definition(
            key=key, service=service, executable=False, event_capable=True
        )
        return self.instance(area, definition, name=name)

    def mode(self, instance, mode_type, config=None, enabled=True) -> ActivationMode:
        return self.modes.save(
            ActivationMode(
                action_instance=instance,
                type=mode_type,
                config=config or {},
                enabled=enabled,
            )
        )

    def cron_mode(self, instance, expression="*/5 * * * *", enabled=True) -> ActivationMode:
        return self.mode(
            instance, ActivationModeType.CRON, {"cron_expression": expression}, enabled
        )

    def link(self, source, target, order=0) -> ActionLink:
        return self.links.save(
            ActionLink(
                source_instance_id=source.id,
                target_instance_id=target.id,
                area_id=source.area.id,
                order=order,
            )
        )


@pytest.fixture
def backend():
    """Create a temporary SQLite backend with the schema applied."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = os.path.join(tmpdir, "test.db")
        backend = SQLiteBackend(db_path=db_path)
        init_schema(backend)
        yield backend
        backend.close()


@pytest.fixture
def factory(backend):
    return GraphFactory(backend)


@pytest.fixture
def execution_repository(backend):
    return ExecutionRepository(backend)


@pytest.fixture
def execution_service(execution_repository, factory):
    return ExecutionService(execution_repository, factory.modes)


@pytest.fixture
def event_bus():
    return MemoryEventBus()


@pytest.fixture
def trigger_service(execution_service, event_bus, factory):
    return ExecutionTriggerService(execution_service, event_bus, factory.links)
