"""Action instance repository."""

import logging
from datetime import UTC, datetime

from area_engine.models import ActionDefinition, ActionInstance, Area
from area_engine.state import DatabaseBackend

from .schema import _dump_json, _format_datetime, _load_json, _parse_datetime

logger = logging.getLogger(__name__)

# Instances are always loaded together with their area and definition.
_INSTANCE_SELECT = """
    SELECT
        i.id, i.name, i.params, i.enabled, i.created_at, i.updated_at,
        a.id AS area_id, a.name AS area_name, a.description AS area_description,
        a.enabled AS area_enabled, a.user_id AS area_user_id,
        a.created_at AS area_created_at, a.updated_at AS area_updated_at,
        d.id AS definition_id, d.key AS definition_key, d.service AS definition_service,
        d.name AS definition_name, d.description AS definition_description,
        d.is_event_capable AS definition_is_event_capable,
        d.is_executable AS definition_is_executable,
        d.default_poll_interval_seconds AS definition_poll_interval
    FROM action_instances i
    JOIN areas a ON a.id = i.area_id
    JOIN action_definitions d ON d.id = i.definition_id
"""

_ORDER_BY = " ORDER BY i.created_at, i.rowid"


class ActionInstanceRepository:
    """Persists action instances and loads them with their area and definition."""

    def __init__(self, backend: DatabaseBackend):
        self.backend = backend

    def save(self, instance: ActionInstance) -> ActionInstance:
        """Insert or update an instance. The area and definition must already exist."""
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO action_instances
                (id, name, area_id, definition_id, params, enabled, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    area_id = excluded.area_id,
                    definition_id = excluded.definition_id,
                    params = excluded.params,
                    enabled = excluded.enabled,
                    updated_at = excluded.updated_at
                """,
                (
                    instance.id,
                    instance.name,
                    instance.area.id,
                    instance.definition.id,
                    _dump_json(instance.params),
                    int(instance.enabled),
                    _format_datetime(instance.created_at),
                    _format_datetime(instance.updated_at),
                ),
            )
        return instance

    def get(self, instance_id: str) -> ActionInstance | None:
        row = self.backend.fetchone(_INSTANCE_SELECT + " WHERE i.id = ?", (instance_id,))
        return self._row_to_instance(row) if row else None

    def find_by_area(self, area_id: str) -> list[ActionInstance]:
        rows = self.backend.fetchall(
            _INSTANCE_SELECT + " WHERE i.area_id = ?" + _ORDER_BY, (area_id,)
        )
        return self._rows_to_instances(rows)

    def find_enabled_by_area(self, area_id: str) -> list[ActionInstance]:
        """Enabled instances of an area, in creation order."""
        rows = self.backend.fetchall(
            _INSTANCE_SELECT + " WHERE i.area_id = ? AND i.enabled = 1" + _ORDER_BY,
            (area_id,),
        )
        return self._rows_to_instances(rows)

    def find_enabled_by_service(self, service: str) -> list[ActionInstance]:
        """Enabled instances whose definition belongs to the given provider."""
        rows = self.backend.fetchall(
            _INSTANCE_SELECT + " WHERE LOWER(d.service) = ? AND i.enabled = 1" + _ORDER_BY,
            (service.lower(),),
        )
        return self._rows_to_instances(rows)

    def delete(self, instance_id: str) -> bool:
        with self.backend.transaction():
            cursor = self.backend.execute(
                "DELETE FROM action_instances WHERE id = ?", (instance_id,)
            )
        return cursor.rowcount > 0

    def _rows_to_instances(self, rows: list[dict]) -> list[ActionInstance]:
        instances = []
        for row in rows:
            try:
                instances.append(self._row_to_instance(row))
            except Exception as e:
                logger.error(f"Failed to parse action instance row {row.get('id')}: {e}")
        return instances

    def _row_to_instance(self, row: dict) -> ActionInstance:
        area = Area(
            id=row["area_id"],
            name=row["area_name"],
            description=row.get("area_description") or "",
            enabled=bool(row["area_enabled"]),
            user_id=row.get("area_user_id"),
            created_at=_parse_datetime(row.get("area_created_at")) or datetime.now(UTC),
            updated_at=_parse_datetime(row.get("area_updated_at")) or datetime.now(UTC),
        )
        definition = ActionDefinition(
            id=row["definition_id"],
            key=row["definition_key"],
            service=row["definition_service"],
            name=row.get("definition_name") or "",
            description=row.get("definition_description") or "",
            is_event_capable=bool(row["definition_is_event_capable"]),
            is_executable=bool(row["definition_is_executable"]),
            default_poll_interval_seconds=row.get("definition_poll_interval"),
        )
        return ActionInstance(
            id=row["id"],
            name=row["name"],
            area=area,
            definition=definition,
            params=_load_json(row.get("params"), {}),
            enabled=bool(row["enabled"]),
            created_at=_parse_datetime(row.get("created_at")) or datetime.now(UTC),
            updated_at=_parse_datetime(row.get("updated_at")) or datetime.now(UTC),
        )
