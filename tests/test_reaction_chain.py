"""Tests for ReactionChainService."""

from unittest.mock import MagicMock

import pytest

from area_engine.errors import ChainError
from area_engine.models import Execution, ExecutionStatus
from area_engine.orchestration import DataMappingService, ExecutionTriggerService
from area_engine.orchestration.chain import ChainStepStatus, ReactionChainService


@pytest.fixture
def chain_service(factory, trigger_service):
    return ReactionChainService(
        factory.instances, factory.areas, trigger_service, DataMappingService()
    )


def _payloads_by_instance(event_bus):
    return {m.action_instance_id: m.payload for m in event_bus.messages}


class TestProcessReactionChain:
    def test_runs_in_order_and_enriches(self, chain_service, factory, event_bus):
        """Reactions run by ascending order; each step sees the previous execution."""
        area = factory.area()
        r2 = factory.reaction(area, "R2", order=1)
        r0 = factory.reaction(area, "R0", order=0)
        r1 = factory.reaction(area, "R1", order=2)

        results = chain_service.process_reaction_chain(area, {"user": "octocat"}, "corr-1")

        assert [r.name for r in results] == ["R0", "R2", "R1"]
        assert all(r.status == ChainStepStatus.TRIGGERED for r in results)
        assert [m.action_instance_id for m in event_bus.messages] == [r0.id, r2.id, r1.id]
        assert {m.correlation_id for m in event_bus.messages} == {"corr-1"}

        payloads = _payloads_by_instance(event_bus)
        assert payloads[r0.id] == {"user": "octocat"}
        assert payloads[r2.id]["chain_step"] == 1
        assert payloads[r2.id]["previous_reaction_name"] == "R0"
        assert payloads[r2.id]["previous_execution_id"] == results[0].execution_id
        assert payloads[r2.id]["previous_result"] == {
            "status": "queued",
            "execution_id": results[0].execution_id,
            "reaction_type": r0.definition.key,
        }
        assert payloads[r1.id]["chain_step"] == 2
        assert payloads[r1.id]["previous_reaction_name"] == "R2"
        assert payloads[r1.id]["user"] == "octocat"

    def test_equal_orders_keep_creation_order(self, chain_service, factory):
        area = factory.area()
        factory.reaction(area, "first")
        factory.reaction(area, "second")

        results = chain_service.process_reaction_chain(area, {})
        assert [r.name for r in results] == ["first", "second"]

    def test_skips_event_only_and_disabled(self, chain_service, factory):
        area = factory.area()
        factory.event_source(area)
        factory.instance(area, name="off", enabled=False)
        factory.reaction(area, "on")

        results = chain_service.process_reaction_chain(area, {})
        assert [r.name for r in results] == ["on"]

    def test_condition_false_skips(self, chain_service, factory, event_bus):
        area = factory.area()
        factory.reaction(
            area,
            "only-main",
            condition={"field": "ref", "operator": "equals", "value": "main"},
        )
        factory.reaction(area, "always", order=1)

        results = chain_service.process_reaction_chain(area, {"ref": "dev"})

        assert [(r.name, r.status) for r in results] == [
            ("only-main", ChainStepStatus.SKIPPED),
            ("always", ChainStepStatus.TRIGGERED),
        ]
        assert len(event_bus.messages) == 1
        assert "chain_step" not in event_bus.messages[0].payload

    def test_mapping_applied(self, chain_service, factory, event_bus):
        area = factory.area()
        factory.reaction(area, "post", mapping={"channel": "repo.name", "static": 7})

        chain_service.process_reaction_chain(area, {"repo": {"name": "animus"}})

        assert event_bus.messages[0].payload == {"channel": "animus", "static": 7}

    def test_mapping_error_uses_original_payload(self, chain_service, factory, event_bus):
        """A mapping that raises falls back to the unmapped payload."""
        area = factory.area()
        factory.reaction(
            area, "count", mapping={"n": {"type": "number", "source": "value"}}
        )

        results = chain_service.process_reaction_chain(area, {"value": "abc"})

        assert results[0].status == ChainStepStatus.TRIGGERED
        assert event_bus.messages[0].payload == {"value": "abc"}

    @pytest.fixture
    def failing_chain(self, factory, execution_service):
        """Chain service whose bus fails on the first publish."""
        bus = MagicMock()
        bus.publish_area_event.side_effect = [RuntimeError("stream down"), "1-0", "2-0"]
        trigger = ExecutionTriggerService(execution_service, bus, factory.links)
        service = ReactionChainService(
            factory.instances, factory.areas, trigger, DataMappingService()
        )
        return service, bus

    def test_continue_on_error(self, failing_chain, factory):
        service, bus = failing_chain
        area = factory.area()
        factory.reaction(area, "flaky", order=0)
        factory.reaction(area, "next", order=1)

        results = service.process_reaction_chain(area, {})

        assert [r.status for r in results] == [ChainStepStatus.FAILED, ChainStepStatus.TRIGGERED]
        assert "stream down" in results[0].error
        # failed steps do not enrich the payload
        assert "chain_step" not in bus.publish_area_event.call_args_list[1].args[0].payload

    def test_stop_on_error(self, failing_chain, factory):
        service, bus = failing_chain
        area = factory.area()
        factory.reaction(area, "strict", order=0, continue_on_error="false")
        factory.reaction(area, "never", order=1)

        results = service.process_reaction_chain(area, {})

        assert [r.name for r in results] == ["strict"]
        assert bus.publish_area_event.call_count == 1

    def test_load_failure_raises_chain_error(self, factory, trigger_service):
        instances = MagicMock()
        instances.find_enabled_by_area.side_effect = RuntimeError("db locked")
        service = ReactionChainService(
            instances, factory.areas, trigger_service, DataMappingService()
        )
        area = factory.area()

        with pytest.raises(ChainError, match="^Failed to process reaction chain: "):
            service.process_reaction_chain(area, {})


class TestTriggerChainReaction:
    def test_seeds_payload_from_execution(self, chain_service, factory, event_bus):
        area = factory.area()
        source = factory.reaction(area, "source", order=0)
        follower = factory.reaction(area, "follower", order=1)
        execution = Execution(
            action_instance_id=source.id,
            area_id=area.id,
            status=ExecutionStatus.OK,
            input_payload={"issue": 7},
            correlation_id="corr-9",
        )
        result = {"status": "ok", "output": {"id": "m1"}, "error": None}

        chain_service.trigger_chain_reaction(execution, result)

        payloads = _payloads_by_instance(event_bus)
        assert payloads[source.id]["trigger_execution_id"] == execution.id
        assert payloads[source.id]["trigger_result"] == result
        assert payloads[source.id]["source_action"] == "source"
        assert payloads[follower.id]["issue"] == 7
        assert {m.correlation_id for m in event_bus.messages} == {"corr-9"}

    def test_missing_instance_raises(self, chain_service):
        execution = Execution(action_instance_id="missing", area_id="area")
        with pytest.raises(ChainError, match="^Failed to trigger chain reaction: "):
            chain_service.trigger_chain_reaction(execution, {})
