"""Database schema and row helpers shared by the repositories."""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from area_engine.state import DatabaseBackend

logger = logging.getLogger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS areas (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT DEFAULT '',
        enabled INTEGER NOT NULL DEFAULT 1,
        user_id TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_areas_enabled ON areas(enabled);

    CREATE TABLE IF NOT EXISTS action_definitions (
        id TEXT PRIMARY KEY,
        key TEXT NOT NULL UNIQUE,
        service TEXT NOT NULL,
        name TEXT DEFAULT '',
        description TEXT DEFAULT '',
        is_event_capable INTEGER NOT NULL DEFAULT 0,
        is_executable INTEGER NOT NULL DEFAULT 0,
        default_poll_interval_seconds INTEGER
    );

    CREATE INDEX IF NOT EXISTS idx_action_definitions_service ON action_definitions(service);

    CREATE TABLE IF NOT EXISTS action_instances (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        area_id TEXT NOT NULL,
        definition_id TEXT NOT NULL,
        params TEXT,
        enabled INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (area_id) REFERENCES areas(id) ON DELETE CASCADE,
        FOREIGN KEY (definition_id) REFERENCES action_definitions(id)
    );

    CREATE INDEX IF NOT EXISTS idx_action_instances_area ON action_instances(area_id, enabled);

    CREATE TABLE IF NOT EXISTS activation_modes (
        id TEXT PRIMARY KEY,
        action_instance_id TEXT NOT NULL,
        type TEXT NOT NULL,
        config TEXT,
        enabled INTEGER NOT NULL DEFAULT 1,
        dedup TEXT NOT NULL DEFAULT 'NONE',
        max_concurrency INTEGER,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (action_instance_id) REFERENCES action_instances(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_activation_modes_type ON activation_modes(type, enabled);
    CREATE INDEX IF NOT EXISTS idx_activation_modes_instance
    ON activation_modes(action_instance_id);

    CREATE TABLE IF NOT EXISTS action_links (
        source_instance_id TEXT NOT NULL,
        target_instance_id TEXT NOT NULL,
        area_id TEXT NOT NULL,
        mapping TEXT,
        condition TEXT,
        link_type TEXT NOT NULL DEFAULT 'chain',
        link_order INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (source_instance_id, target_instance_id),
        FOREIGN KEY (source_instance_id) REFERENCES action_instances(id) ON DELETE CASCADE,
        FOREIGN KEY (target_instance_id) REFERENCES action_instances(id) ON DELETE CASCADE,
        FOREIGN KEY (area_id) REFERENCES areas(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_action_links_area ON action_links(area_id);

    CREATE TABLE IF NOT EXISTS executions (
        id TEXT PRIMARY KEY,
        action_instance_id TEXT NOT NULL,
        area_id TEXT NOT NULL,
        activation_mode_id TEXT,
        status TEXT NOT NULL DEFAULT 'queued',
        attempt INTEGER NOT NULL DEFAULT 0,
        input_payload TEXT,
        output_payload TEXT,
        error TEXT,
        correlation_id TEXT,
        dedup_key TEXT,
        queued_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        started_at TIMESTAMP,
        finished_at TIMESTAMP
    );

    CREATE INDEX IF NOT EXISTS idx_executions_status ON executions(status);
    CREATE INDEX IF NOT EXISTS idx_executions_correlation ON executions(correlation_id);
    CREATE INDEX IF NOT EXISTS idx_executions_instance
    ON executions(action_instance_id, queued_at DESC);
"""


def init_schema(backend: DatabaseBackend) -> None:
    """Create all tables and indexes if missing."""
    backend.executescript(SCHEMA)


def _parse_datetime(value) -> datetime | None:
    """Parse datetime from database (handles both strings and datetime objects)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(value)
        except (ValueError, TypeError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _dump_json(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, default=str)


def _load_json(value: str | None, default: Any = None) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        logger.warning("Corrupted JSON column value, using default")
        return default
