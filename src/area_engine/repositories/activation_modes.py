"""Activation mode repository with invariant checks."""

import logging
from datetime import UTC, datetime

from area_engine.errors import ActivationModeValidationError
from area_engine.models import ActivationMode, ActivationModeType, DedupStrategy
from area_engine.state import DatabaseBackend

from .instances import ActionInstanceRepository
from .schema import _dump_json, _format_datetime, _load_json, _parse_datetime

logger = logging.getLogger(__name__)

_EXECUTABLE_ONLY = (ActivationModeType.CRON, ActivationModeType.CHAIN)
_EVENT_ONLY = (ActivationModeType.WEBHOOK, ActivationModeType.POLL)


class ActivationModeRepository:
    """Persists activation modes.

    Saving enforces the per-instance rules: CRON/CHAIN need an executable
    instance, WEBHOOK/POLL need an event-capable one, a CRON mode needs a
    cron expression, and an instance holds at most one enabled mode per type.
    """

    def __init__(self, backend: DatabaseBackend, instance_repository: ActionInstanceRepository):
        self.backend = backend
        self.instances = instance_repository

    def validate(self, mode: ActivationMode) -> None:
        """Raise ActivationModeValidationError if the mode breaks an invariant."""
        instance = mode.action_instance
        definition = instance.definition

        if mode.type in _EXECUTABLE_ONLY and not definition.is_executable:
            raise ActivationModeValidationError(
                f"{mode.type.value} activation requires an executable action",
                mode_type=mode.type.value,
                action_instance_id=instance.id,
            )
        if mode.type in _EVENT_ONLY and not definition.is_event_capable:
            raise ActivationModeValidationError(
                f"{mode.type.value} activation requires an event-capable action",
                mode_type=mode.type.value,
                action_instance_id=instance.id,
            )
        if mode.type == ActivationModeType.CRON and not mode.cron_expression:
            raise ActivationModeValidationError(
                "CRON activation requires config.cron_expression",
                mode_type=mode.type.value,
                action_instance_id=instance.id,
            )

        if mode.enabled:
            row = self.backend.fetchone(
                """
                SELECT id FROM activation_modes
                WHERE action_instance_id = ? AND type = ? AND enabled = 1 AND id != ?
                """,
                (instance.id, mode.type.value, mode.id),
            )
            if row:
                raise ActivationModeValidationError(
                    f"Action instance already has an enabled {mode.type.value} activation",
                    mode_type=mode.type.value,
                    action_instance_id=instance.id,
                )

    def save(self, mode: ActivationMode) -> ActivationMode:
        """Validate, then insert or update an activation mode."""
        self.validate(mode)
        mode.updated_at = datetime.now(UTC)
        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO activation_modes
                (id, action_instance_id, type, config, enabled, dedup, max_concurrency,
                 created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    action_instance_id = excluded.action_instance_id,
                    type = excluded.type,
                    config = excluded.config,
                    enabled = excluded.enabled,
                    dedup = excluded.dedup,
                    max_concurrency = excluded.max_concurrency,
                    updated_at = excluded.updated_at
                """,
                (
                    mode.id,
                    mode.action_instance.id,
                    mode.type.value,
                    _dump_json(mode.config),
                    int(mode.enabled),
                    mode.dedup.value,
                    mode.max_concurrency,
                    _format_datetime(mode.created_at),
                    _format_datetime(mode.updated_at),
                ),
            )
        logger.debug(f"Saved {mode.type.value} activation mode {mode.id}")
        return mode

    def get(self, mode_id: str) -> ActivationMode | None:
        row = self.backend.fetchone("SELECT * FROM activation_modes WHERE id = ?", (mode_id,))
        if not row:
            return None
        modes = self._rows_to_modes([row])
        return modes[0] if modes else None

    def find_by_instance(self, instance_id: str) -> list[ActivationMode]:
        rows = self.backend.fetchall(
            "SELECT * FROM activation_modes WHERE action_instance_id = ? ORDER BY created_at",
            (instance_id,),
        )
        return self._rows_to_modes(rows)

    def find_enabled_by_instance_and_type(
        self, instance_id: str, mode_type: ActivationModeType
    ) -> ActivationMode | None:
        row = self.backend.fetchone(
            """
            SELECT * FROM activation_modes
            WHERE action_instance_id = ? AND type = ? AND enabled = 1
            """,
            (instance_id, mode_type.value),
        )
        if not row:
            return None
        modes = self._rows_to_modes([row])
        return modes[0] if modes else None

    def find_by_type_and_enabled(
        self, mode_type: ActivationModeType, enabled: bool
    ) -> list[ActivationMode]:
        rows = self.backend.fetchall(
            "SELECT * FROM activation_modes WHERE type = ? AND enabled = ? ORDER BY created_at",
            (mode_type.value, int(enabled)),
        )
        return self._rows_to_modes(rows)

    def find_all_enabled(self) -> list[ActivationMode]:
        rows = self.backend.fetchall(
            "SELECT * FROM activation_modes WHERE enabled = 1 ORDER BY created_at"
        )
        return self._rows_to_modes(rows)

    def find_enabled_by_area_and_type(
        self, area_id: str, mode_type: ActivationModeType
    ) -> list[ActivationMode]:
        rows = self.backend.fetchall(
            """
            SELECT m.* FROM activation_modes m
            JOIN action_instances i ON i.id = m.action_instance_id
            WHERE i.area_id = ? AND m.type = ? AND m.enabled = 1
            ORDER BY m.created_at
            """,
            (area_id, mode_type.value),
        )
        return self._rows_to_modes(rows)

    def delete(self, mode_id: str) -> bool:
        with self.backend.transaction():
            cursor = self.backend.execute("DELETE FROM activation_modes WHERE id = ?", (mode_id,))
        return cursor.rowcount > 0

    def _rows_to_modes(self, rows: list[dict]) -> list[ActivationMode]:
        """Convert rows, resolving each owning instance once."""
        instances = {}
        modes = []
        for row in rows:
            instance_id = row["action_instance_id"]
            if instance_id not in instances:
                instances[instance_id] = self.instances.get(instance_id)
            instance = instances[instance_id]
            if instance is None:
                logger.warning(
                    f"Activation mode {row['id']} references missing instance {instance_id}"
                )
                continue
            try:
                modes.append(
                    ActivationMode(
                        id=row["id"],
                        action_instance=instance,
                        type=ActivationModeType(row["type"]),
                        config=_load_json(row.get("config"), {}),
                        enabled=bool(row["enabled"]),
                        dedup=DedupStrategy(row.get("dedup") or DedupStrategy.NONE.value),
                        max_concurrency=row.get("max_concurrency"),
                        created_at=_parse_datetime(row.get("created_at")) or datetime.now(UTC),
                        updated_at=_parse_datetime(row.get("updated_at")) or datetime.now(UTC),
                    )
                )
            except Exception as e:
                logger.error(f"Failed to parse activation mode row {row['id']}: {e}")
        return modes
