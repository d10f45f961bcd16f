"""Area event bus backends.

Every execution created by the trigger service is announced on the bus so
workers can pick it up.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod

from area_engine.errors import EventPublishError
from area_engine.models import AreaEventMessage

logger = logging.getLogger(__name__)


def message_to_fields(message: AreaEventMessage) -> dict[str, str]:
    """Flatten a message into string fields suitable for XADD."""
    return {
        "execution_id": message.execution_id,
        "action_instance_id": message.action_instance_id,
        "area_id": message.area_id,
        "event_type": message.event_type,
        "source": message.source,
        "correlation_id": message.correlation_id or "",
        "timestamp": message.timestamp.isoformat(),
        "priority": str(message.priority),
        "payload": json.dumps(message.payload, default=str),
        "metadata": json.dumps(message.metadata, default=str),
    }


class EventBus(ABC):
    """Publishes area events."""

    @abstractmethod
    def publish_area_event(self, message: AreaEventMessage) -> str:
        """Publish a message and return its record id.

        Raises:
            EventPublishError: If the message could not be published
        """


class MemoryEventBus(EventBus):
    """Keeps published messages in memory. Used when no Redis is configured."""

    def __init__(self):
        self._lock = threading.Lock()
        self.messages: list[AreaEventMessage] = []

    def publish_area_event(self, message: AreaEventMessage) -> str:
        with self._lock:
            self.messages.append(message)
        record_id = str(uuid.uuid4())
        logger.debug(
            f"Published {message.event_type} event for execution {message.execution_id}",
            extra={"correlation_id": message.correlation_id},
        )
        return record_id

    def clear(self) -> None:
        with self._lock:
            self.messages.clear()


class RedisEventBus(EventBus):
    """Publishes area events to a Redis stream with XADD."""

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        stream: str = "areas:events",
        consumer_group: str = "area-workers",
        maxlen: int | None = 10000,
        client=None,
    ):
        self._url = url
        self.stream = stream
        self.consumer_group = consumer_group
        self.maxlen = maxlen
        self._client = client

    def _get_client(self):
        if self._client is None:
            import redis

            self._client = redis.from_url(self._url)
        return self._client

    def initialize_stream(self) -> None:
        """Create the stream and consumer group if missing."""
        import redis

        try:
            self._get_client().xgroup_create(
                self.stream, self.consumer_group, id="0", mkstream=True
            )
            logger.info(f"Created consumer group {self.consumer_group} on {self.stream}")
        except redis.exceptions.ResponseError as e:
            if "BUSYGROUP" in str(e):
                logger.debug(f"Consumer group {self.consumer_group} already exists")
            else:
                logger.error(f"Failed to initialize stream {self.stream}: {e}")
        except Exception as e:
            logger.error(f"Failed to initialize stream {self.stream}: {e}")

    def publish_area_event(self, message: AreaEventMessage) -> str:
        try:
            record_id = self._get_client().xadd(
                self.stream,
                message_to_fields(message),
                maxlen=self.maxlen,
                approximate=True,
            )
        except Exception as e:
            logger.error(
                f"Failed to publish event for execution {message.execution_id}: {e}",
                extra={"correlation_id": message.correlation_id},
            )
            raise EventPublishError(
                f"Failed to publish area event: {e}",
                stream=self.stream,
                execution_id=message.execution_id,
            ) from e

        if isinstance(record_id, bytes):
            record_id = record_id.decode()
        logger.debug(
            f"Published {message.event_type} event {record_id} to {self.stream}",
            extra={"correlation_id": message.correlation_id},
        )
        return record_id


# Global event bus instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get or create the global event bus (Redis stream when AREA_REDIS_URL is set)."""
    global _event_bus

    if _event_bus is None:
        _event_bus = create_event_bus()

    return _event_bus


def create_event_bus(settings=None) -> EventBus:
    """Create an event bus from settings (defaults to the global settings)."""
    if settings is None:
        from area_engine.config import get_settings

        settings = get_settings()

    if settings.redis_url:
        return RedisEventBus(
            url=settings.redis_url,
            stream=settings.events_stream,
            consumer_group=settings.events_consumer_group,
            maxlen=settings.events_stream_maxlen,
        )
    return MemoryEventBus()


def reset_event_bus() -> None:
    """Reset the global event bus. Useful for testing."""
    global _event_bus
    _event_bus = None
