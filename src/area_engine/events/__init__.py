"""Area event publishing."""

from .bus import (
    EventBus,
    MemoryEventBus,
    RedisEventBus,
    create_event_bus,
    get_event_bus,
    message_to_fields,
    reset_event_bus,
)

__all__ = [
    "EventBus",
    "MemoryEventBus",
    "RedisEventBus",
    "create_event_bus",
    "get_event_bus",
    "message_to_fields",
    "reset_event_bus",
]
