"""Webhook idempotency layer.

Keys live in the shared store as ``webhook:dedup:{provider}:{event_id}``
and expire after a provider-specific window.

Failure policy: a blank event id is treated as a duplicate (fail-closed),
while a store outage lets the event through (fail-open).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from area_engine.cache import TTL_PERSISTENT, Cache

logger = logging.getLogger(__name__)

KEY_PREFIX = "webhook:dedup:"


def _is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


class DeduplicationService:
    """Tracks processed webhook event ids."""

    def __init__(
        self,
        store: Cache,
        github_ttl: int = 1800,
        slack_ttl: int = 300,
        generic_ttl: int = 900,
        default_ttl: int = 3600,
    ):
        self.store = store
        self.github_ttl = github_ttl
        self.slack_ttl = slack_ttl
        self.generic_ttl = generic_ttl
        self.default_ttl = default_ttl

    @classmethod
    def from_settings(cls, store: Cache, settings) -> DeduplicationService:
        return cls(
            store,
            github_ttl=settings.dedup_ttl_github_seconds,
            slack_ttl=settings.dedup_ttl_slack_seconds,
            generic_ttl=settings.dedup_ttl_generic_seconds,
            default_ttl=settings.dedup_ttl_default_seconds,
        )

    @staticmethod
    def build_key(event_id: str, provider: str | None) -> str:
        return f"{KEY_PREFIX}{(provider or '').lower()}:{event_id}"

    def ttl_for(self, provider: str | None) -> int:
        """Dedup window in seconds for a provider."""
        if provider is None:
            return self.default_ttl
        provider_key = provider.lower()
        if provider_key == "github":
            return self.github_ttl
        if provider_key == "slack":
            return self.slack_ttl
        return self.generic_ttl

    def _resolve_ttl(self, provider: str | None, ttl: int | timedelta | None) -> int:
        if ttl is None:
            return self.ttl_for(provider)
        if isinstance(ttl, timedelta):
            return max(1, int(ttl.total_seconds()))
        return max(1, int(ttl))

    def _marker(self, provider: str | None) -> dict:
        return {"provider": provider, "processed_at": datetime.now(UTC).isoformat()}

    def is_duplicate(self, event_id: str | None, provider: str | None) -> bool:
        """Return True if the event was already processed."""
        if _is_blank(event_id):
            logger.warning(f"Webhook event without id from {provider}, treating as duplicate")
            return True
        try:
            return self.store.exists(self.build_key(event_id, provider))
        except Exception as e:
            logger.error(f"Dedup lookup failed for {provider}:{event_id}: {e}")
            return False

    def mark_as_processed(
        self,
        event_id: str | None,
        provider: str | None,
        ttl: int | timedelta | None = None,
    ) -> None:
        """Record an event id for the provider's dedup window."""
        if _is_blank(event_id):
            return
        try:
            self.store.set(
                self.build_key(event_id, provider),
                self._marker(provider),
                ttl=self._resolve_ttl(provider, ttl),
            )
        except Exception as e:
            logger.error(f"Failed to mark webhook event {provider}:{event_id}: {e}")

    def check_and_mark(
        self,
        event_id: str | None,
        provider: str | None,
        ttl: int | timedelta | None = None,
    ) -> bool:
        """Atomically record an event id.

        Returns:
            True if the event was already recorded (duplicate), False if this
            call recorded it
        """
        if _is_blank(event_id):
            logger.warning(f"Webhook event without id from {provider}, treating as duplicate")
            return True
        try:
            was_set = self.store.set_if_absent(
                self.build_key(event_id, provider),
                self._marker(provider),
                ttl=self._resolve_ttl(provider, ttl),
            )
        except Exception as e:
            logger.error(f"Dedup check failed for {provider}:{event_id}: {e}")
            return False

        if not was_set:
            logger.info(
                f"Duplicate webhook event {event_id}",
                extra={"provider": provider, "event_id": event_id},
            )
        return not was_set

    def remove_event(self, event_id: str | None, provider: str | None) -> None:
        if _is_blank(event_id):
            return
        try:
            self.store.delete(self.build_key(event_id, provider))
        except Exception as e:
            logger.error(f"Failed to remove webhook event {provider}:{event_id}: {e}")

    def get_remaining_ttl(self, event_id: str | None, provider: str | None) -> int:
        """Seconds left in the dedup window, -2 if unknown, -1 on blank id or error."""
        if _is_blank(event_id):
            return TTL_PERSISTENT
        try:
            return self.store.ttl(self.build_key(event_id, provider))
        except Exception as e:
            logger.error(f"Failed to read TTL for {provider}:{event_id}: {e}")
            return TTL_PERSISTENT

    def clear_provider_events(self, provider: str) -> int:
        """Remove every recorded event of a provider. Returns the number removed."""
        prefix = f"{KEY_PREFIX}{provider.lower()}:"
        try:
            removed = self.store.delete_prefix(prefix)
        except Exception as e:
            logger.error(f"Failed to clear dedup keys for {provider}: {e}")
            return 0
        logger.info(f"Cleared {removed} dedup keys for provider {provider}")
        return removed
