"""Tests for DeduplicationService."""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from unittest.mock import ANY, MagicMock

import pytest

from area_engine.cache import MemoryCache, RedisCache, create_cache
from area_engine.config import Settings
from area_engine.webhooks.dedup import KEY_PREFIX, DeduplicationService


@pytest.fixture
def store():
    return MemoryCache()


@pytest.fixture
def dedup(store):
    return DeduplicationService(store)


@pytest.fixture
def failing_store():
    store = MagicMock()
    for method in ("exists", "set", "set_if_absent", "delete", "ttl", "delete_prefix"):
        getattr(store, method).side_effect = ConnectionError("store down")
    return store


class TestCheckAndMark:
    """check_and_mark() atomic recording."""

    def test_first_then_duplicate(self, dedup):
        """The first call records the id; the second reports a duplicate."""
        assert dedup.check_and_mark("delivery-1", "github") is False
        assert dedup.check_and_mark("delivery-1", "github") is True

    def test_providers_are_independent(self, dedup):
        assert dedup.check_and_mark("evt", "github") is False
        assert dedup.check_and_mark("evt", "slack") is False

    def test_provider_case_is_ignored(self, dedup):
        assert dedup.check_and_mark("evt", "GitHub") is False
        assert dedup.check_and_mark("evt", "github") is True

    @pytest.mark.parametrize("event_id", [None, "", "   "])
    def test_blank_id_is_duplicate(self, dedup, event_id):
        assert dedup.check_and_mark(event_id, "github") is True

    def test_store_failure_fails_open(self, failing_store):
        dedup = DeduplicationService(failing_store)
        assert dedup.check_and_mark("evt", "github") is False

    def test_uses_provider_ttl(self):
        store = MagicMock()
        store.set_if_absent.return_value = True
        dedup = DeduplicationService(store)

        dedup.check_and_mark("evt", "slack")

        args, kwargs = store.set_if_absent.call_args
        assert args[0] == f"{KEY_PREFIX}slack:evt"
        assert kwargs["ttl"] == 300

    def test_concurrent_deliveries_pass_once(self, dedup):
        """Only one of many simultaneous deliveries of an event is new."""
        workers = 16
        barrier = threading.Barrier(workers)

        def deliver():
            barrier.wait()
            return dedup.check_and_mark("delivery-7", "github")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: deliver(), range(workers)))

        assert results.count(False) == 1
        assert results.count(True) == workers - 1

    def test_redis_store_marks_in_one_command(self):
        """Against Redis the check and the mark are a single SET NX EX."""
        client = MagicMock()
        client.set.side_effect = [True, None]
        dedup = DeduplicationService(RedisCache(client=client))

        assert dedup.check_and_mark("evt", "github") is False
        assert dedup.check_and_mark("evt", "github") is True

        assert client.set.call_count == 2
        client.set.assert_called_with(f"{KEY_PREFIX}github:evt", ANY, nx=True, ex=1800)
        client.exists.assert_not_called()

    def test_redelivery_detected_after_many_other_events(self):
        """Unexpired ids stay recorded however many other events arrive."""
        dedup = DeduplicationService(create_cache(Settings(redis_url=None)))

        assert dedup.check_and_mark("evt-0", "github") is False
        for i in range(1, 10_001):
            dedup.check_and_mark(f"evt-{i}", "github")

        assert dedup.check_and_mark("evt-0", "github") is True


class TestIsDuplicate:
    def test_unknown_event(self, dedup):
        assert dedup.is_duplicate("evt", "github") is False

    def test_marked_event(self, dedup):
        dedup.mark_as_processed("evt", "github")
        assert dedup.is_duplicate("evt", "github") is True

    @pytest.mark.parametrize("event_id", [None, ""])
    def test_blank_id(self, dedup, event_id):
        assert dedup.is_duplicate(event_id, "github") is True

    def test_store_failure(self, failing_store):
        assert DeduplicationService(failing_store).is_duplicate("evt", "github") is False


class TestMarkAsProcessed:
    @pytest.mark.parametrize(
        "provider,expected_ttl",
        [("github", 1800), ("slack", 300), ("trello", 900), (None, 3600)],
    )
    def test_default_ttls(self, provider, expected_ttl):
        store = MagicMock()
        DeduplicationService(store).mark_as_processed("evt", provider)
        assert store.set.call_args.kwargs["ttl"] == expected_ttl

    def test_ttl_override(self):
        store = MagicMock()
        dedup = DeduplicationService(store)

        dedup.mark_as_processed("evt", "github", ttl=timedelta(minutes=2))
        assert store.set.call_args.kwargs["ttl"] == 120

        dedup.mark_as_processed("evt", "github", ttl=45)
        assert store.set.call_args.kwargs["ttl"] == 45

    def test_blank_id_is_noop(self):
        store = MagicMock()
        DeduplicationService(store).mark_as_processed("", "github")
        store.set.assert_not_called()

    def test_store_failure_swallowed(self, failing_store):
        DeduplicationService(failing_store).mark_as_processed("evt", "github")


class TestRemainingTtl:
    def test_absent_key(self, dedup):
        assert dedup.get_remaining_ttl("evt", "github") == -2

    def test_marked_key(self, dedup):
        dedup.mark_as_processed("evt", "github")
        remaining = dedup.get_remaining_ttl("evt", "github")
        assert 1790 <= remaining <= 1800

    def test_blank_id(self, dedup):
        assert dedup.get_remaining_ttl(None, "github") == -1

    def test_store_failure(self, failing_store):
        assert DeduplicationService(failing_store).get_remaining_ttl("evt", "github") == -1


class TestRemoveAndClear:
    def test_remove_event(self, dedup):
        dedup.mark_as_processed("evt", "github")
        dedup.remove_event("evt", "github")
        assert dedup.is_duplicate("evt", "github") is False

    def test_clear_provider_events(self, dedup):
        """Only the given provider's keys are removed."""
        dedup.mark_as_processed("a", "github")
        dedup.mark_as_processed("b", "github")
        dedup.mark_as_processed("c", "slack")

        assert dedup.clear_provider_events("github") == 2
        assert dedup.is_duplicate("a", "github") is False
        assert dedup.is_duplicate("c", "slack") is True

    def test_clear_failure_returns_zero(self, failing_store):
        assert DeduplicationService(failing_store).clear_provider_events("github") == 0


def test_build_key():
    assert DeduplicationService.build_key("abc", "GitHub") == "webhook:dedup:github:abc"


def test_from_settings_uses_configured_ttls(store):
    settings = Settings(dedup_ttl_github_seconds=60, dedup_ttl_default_seconds=120)
    dedup = DeduplicationService.from_settings(store, settings)
    assert dedup.ttl_for("github") == 60
    assert dedup.ttl_for(None) == 120
    assert dedup.ttl_for("slack") == 300
