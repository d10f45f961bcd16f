"""Area and action definition repositories."""

import logging
from datetime import UTC, datetime

from area_engine.models import ActionDefinition, Area
from area_engine.state import DatabaseBackend

from .schema import _format_datetime, _parse_datetime

logger = logging.getLogger(__name__)


class AreaRepository:
    """Persists areas."""

    def __init__(self, backend: DatabaseBackend):
        self.backend = backend

    def save(self, area: Area) -> Area:
        """Insert or update an area."""
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO areas (id, name, description, enabled, user_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    enabled = excluded.enabled,
                    user_id = excluded.user_id,
                    updated_at = excluded.updated_at
                """,
                (
                    area.id,
                    area.name,
                    area.description,
                    int(area.enabled),
                    area.user_id,
                    _format_datetime(area.created_at),
                    _format_datetime(area.updated_at),
                ),
            )
        return area

    def get(self, area_id: str) -> Area | None:
        row = self.backend.fetchone("SELECT * FROM areas WHERE id = ?", (area_id,))
        return self._row_to_area(row) if row else None

    def find_all(self) -> list[Area]:
        rows = self.backend.fetchall("SELECT * FROM areas ORDER BY created_at, rowid")
        return [self._row_to_area(row) for row in rows]

    def count(self) -> int:
        row = self.backend.fetchone("SELECT COUNT(*) AS total FROM areas")
        return row["total"] if row else 0

    def count_enabled(self) -> int:
        row = self.backend.fetchone("SELECT COUNT(*) AS total FROM areas WHERE enabled = 1")
        return row["total"] if row else 0

    def delete(self, area_id: str) -> bool:
        with self.backend.transaction():
            cursor = self.backend.execute("DELETE FROM areas WHERE id = ?", (area_id,))
        return cursor.rowcount > 0

    def _row_to_area(self, row: dict) -> Area:
        return Area(
            id=row["id"],
            name=row["name"],
            description=row.get("description") or "",
            enabled=bool(row["enabled"]),
            user_id=row.get("user_id"),
            created_at=_parse_datetime(row.get("created_at")) or datetime.now(UTC),
            updated_at=_parse_datetime(row.get("updated_at")) or datetime.now(UTC),
        )


class ActionDefinitionRepository:
    """Persists the action/reaction catalogue."""

    def __init__(self, backend: DatabaseBackend):
        self.backend = backend

    def save(self, definition: ActionDefinition) -> ActionDefinition:
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO action_definitions
                (id, key, service, name, description, is_event_capable, is_executable,
                 default_poll_interval_seconds)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    key = excluded.key,
                    service = excluded.service,
                    name = excluded.name,
                    description = excluded.description,
                    is_event_capable = excluded.is_event_capable,
                    is_executable = excluded.is_executable,
                    default_poll_interval_seconds = excluded.default_poll_interval_seconds
                """,
                (
                    definition.id,
                    definition.key,
                    definition.service,
                    definition.name,
                    definition.description,
                    int(definition.is_event_capable),
                    int(definition.is_executable),
                    definition.default_poll_interval_seconds,
                ),
            )
        return definition

    def get(self, definition_id: str) -> ActionDefinition | None:
        row = self.backend.fetchone(
            "SELECT * FROM action_definitions WHERE id = ?", (definition_id,)
        )
        return self._row_to_definition(row) if row else None

    def get_by_key(self, key: str) -> ActionDefinition | None:
        row = self.backend.fetchone("SELECT * FROM action_definitions WHERE key = ?", (key,))
        return self._row_to_definition(row) if row else None

    def find_by_service(self, service: str) -> list[ActionDefinition]:
        rows = self.backend.fetchall(
            "SELECT * FROM action_definitions WHERE service = ? ORDER BY key", (service,)
        )
        return [self._row_to_definition(row) for row in rows]

    def _row_to_definition(self, row: dict) -> ActionDefinition:
        return ActionDefinition(
            id=row["id"],
            key=row["key"],
            service=row["service"],
            name=row.get("name") or "",
            description=row.get("description") or "",
            is_event_capable=bool(row["is_event_capable"]),
            is_executable=bool(row["is_executable"]),
            default_poll_interval_seconds=row.get("default_poll_interval_seconds"),
        )
