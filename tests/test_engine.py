"""Tests for AreaEngine wiring."""

import os
import tempfile
from unittest.mock import MagicMock

import pytest

from area_engine.cache import MemoryCache, get_cache, reset_cache
from area_engine.config import Settings, get_settings
from area_engine.engine import AreaEngine
from area_engine.events import MemoryEventBus, get_event_bus, reset_event_bus
from area_engine.models import ActivationModeType, ExecutionStatus
from area_engine.scheduler import CronSchedulerService
from area_engine.state import SQLiteBackend, get_database, reset_database


@pytest.fixture
def engine(backend):
    return AreaEngine(
        Settings(redis_url=None), backend, MemoryCache(), MemoryEventBus(), scheduler=MagicMock()
    )


class TestFromSettings:
    def test_builds_from_explicit_settings(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = os.path.join(tmpdir, "engine.db")
            settings = Settings(database_url=f"sqlite:///{db_path}", redis_url=None)

            engine = AreaEngine.from_settings(settings)
            try:
                assert isinstance(engine.backend, SQLiteBackend)
                assert isinstance(engine.cache, MemoryCache)
                assert isinstance(engine.event_bus, MemoryEventBus)
                assert isinstance(engine.scheduler, CronSchedulerService)
                assert engine.areas.count() == 0
            finally:
                engine.shutdown()

    def test_dedup_uses_settings(self, backend):
        settings = Settings(redis_url=None, dedup_ttl_slack_seconds=42)
        engine = AreaEngine(settings, backend, MemoryCache(), MemoryEventBus())
        assert engine.dedup.ttl_for("slack") == 42


class TestLifecycle:
    def test_start_schedules_cron_modes(self, engine, factory):
        factory.cron_mode(factory.reaction(factory.area(), "digest"))

        engine.start()

        engine.scheduler.start.assert_called_once()
        engine.scheduler.schedule_activation_mode.assert_called_once()

    def test_set_area_enabled_cascades(self, engine, factory):
        area = factory.area()
        mode = factory.cron_mode(factory.reaction(area, "digest"))

        updated = engine.set_area_enabled(area.id, False)

        assert updated.enabled is False
        assert engine.areas.get(area.id).enabled is False
        engine.scheduler.cancel_scheduled_task.assert_called_once_with(mode.id)

    def test_set_unknown_area(self, engine):
        assert engine.set_area_enabled("missing", True) is None

    def test_set_activation_mode_enabled(self, engine, factory):
        mode = factory.cron_mode(factory.reaction(factory.area(), "digest"))

        engine.set_activation_mode_enabled(mode.id, False)

        assert engine.activation_modes.get(mode.id).enabled is False
        engine.scheduler.cancel_scheduled_task.assert_called_once_with(mode.id)

    def test_set_unknown_activation_mode(self, engine):
        assert engine.set_activation_mode_enabled("missing", True) is None


def test_completion_starts_reaction_chain(engine, factory):
    """Completing an execution in an area with a CHAIN mode runs the area's chain."""
    area = factory.area()
    first = factory.reaction(area, "first", order=0)
    second = factory.reaction(area, "second", order=1)
    factory.mode(first, ActivationModeType.CHAIN)

    execution = engine.trigger.trigger_manual_execution(first, {"issue": 1})
    engine.event_bus.clear()

    engine.executions.complete_execution(execution.id, ExecutionStatus.OK, {"done": True})

    triggered = [m.action_instance_id for m in engine.event_bus.messages]
    assert triggered == [first.id, second.id]
    payload = engine.event_bus.messages[1].payload
    assert payload["trigger_execution_id"] == execution.id
    assert payload["trigger_result"]["output"] == {"done": True}
    assert payload["chain_step"] == 1


def test_chain_executions_do_not_restart_chain(engine, factory):
    """Completing the executions a chain queued does not queue the chain again."""
    area = factory.area()
    only = factory.reaction(area, "only")
    factory.mode(only, ActivationModeType.CHAIN)

    execution = engine.trigger.trigger_manual_execution(only, {})
    engine.event_bus.clear()
    engine.executions.complete_execution(execution.id, ExecutionStatus.OK)
    pending = [m.execution_id for m in engine.event_bus.messages]
    assert len(pending) == 1

    queued_per_round = []
    for _ in range(5):
        engine.event_bus.clear()
        for execution_id in pending:
            engine.executions.complete_execution(execution_id, ExecutionStatus.OK)
        pending = [m.execution_id for m in engine.event_bus.messages]
        queued_per_round.append(len(pending))

    assert queued_per_round == [0, 0, 0, 0, 0]


def test_chain_marker_survives_mapping(engine, factory):
    """A reaction mapping that drops every key still leaves the chain marker."""
    area = factory.area()
    source = factory.reaction(area, "source", order=0)
    post = factory.reaction(area, "post", order=1, mapping={"channel": "source_action"})
    factory.mode(source, ActivationModeType.CHAIN)

    execution = engine.trigger.trigger_manual_execution(source, {})
    engine.event_bus.clear()
    engine.executions.complete_execution(execution.id, ExecutionStatus.OK)

    message = engine.event_bus.messages[1]
    assert message.action_instance_id == post.id
    assert message.payload == {"channel": "source", "trigger_execution_id": execution.id}

    engine.event_bus.clear()
    engine.executions.complete_execution(message.execution_id, ExecutionStatus.OK)
    assert engine.event_bus.messages == []


def test_completion_without_chain_mode(engine, factory):
    reaction = factory.reaction(factory.area(), "only")
    execution = engine.trigger.trigger_manual_execution(reaction, {})
    engine.event_bus.clear()

    engine.executions.complete_execution(execution.id, ExecutionStatus.OK)

    assert engine.event_bus.messages == []


class TestSharedInstances:
    @pytest.fixture(autouse=True)
    def reset_globals(self, monkeypatch, tmp_path):
        monkeypatch.setenv("AREA_DATABASE_URL", f"sqlite:///{tmp_path / 'shared.db'}")
        monkeypatch.delenv("AREA_REDIS_URL", raising=False)
        self._reset()
        yield
        self._reset()

    @staticmethod
    def _reset():
        get_settings.cache_clear()
        reset_database()
        reset_cache()
        reset_event_bus()

    def test_without_settings_uses_globals(self):
        """from_settings() with no arguments shares the process-wide collaborators."""
        engine = AreaEngine.from_settings()
        try:
            assert engine.backend is get_database()
            assert engine.cache is get_cache()
            assert engine.event_bus is get_event_bus()
            assert str(engine.backend.db_path).endswith("shared.db")
        finally:
            engine.shutdown()
