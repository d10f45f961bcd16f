"""Action link repository."""

import logging
from datetime import UTC, datetime

from area_engine.errors import ValidationError
from area_engine.models import ActionLink
from area_engine.state import DatabaseBackend

from .instances import ActionInstanceRepository
from .schema import _dump_json, _format_datetime, _load_json, _parse_datetime

logger = logging.getLogger(__name__)


class ActionLinkRepository:
    """Persists directed links between instances of the same area.

    At most one link exists per ordered (source, target) pair; saving an
    existing pair updates it.
    """

    def __init__(self, backend: DatabaseBackend, instance_repository: ActionInstanceRepository):
        self.backend = backend
        self.instances = instance_repository

    def save(self, link: ActionLink) -> ActionLink:
        if link.source_instance_id == link.target_instance_id:
            raise ValidationError("An action link cannot target its own source")

        for instance_id in (link.source_instance_id, link.target_instance_id):
            instance = self.instances.get(instance_id)
            if instance is None:
                raise ValidationError(f"Action instance {instance_id} not found")
            if instance.area.id != link.area_id:
                raise ValidationError(
                    f"Action instance {instance_id} does not belong to area {link.area_id}"
                )

        with self.backend.transaction():
            self.backend.execute(
                """
                INSERT INTO action_links
                (source_instance_id, target_instance_id, area_id, mapping, condition,
                 link_type, link_order, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(source_instance_id, target_instance_id) DO UPDATE SET
                    mapping = excluded.mapping,
                    condition = excluded.condition,
                    link_type = excluded.link_type,
                    link_order = excluded.link_order
                """,
                (
                    link.source_instance_id,
                    link.target_instance_id,
                    link.area_id,
                    _dump_json(link.mapping),
                    _dump_json(link.condition),
                    link.link_type,
                    link.order,
                    _format_datetime(link.created_at),
                ),
            )
        return link

    def find_by_source(self, source_instance_id: str) -> list[ActionLink]:
        """Outgoing links of an instance, ordered by link order, with targets loaded."""
        rows = self.backend.fetchall(
            """
            SELECT * FROM action_links
            WHERE source_instance_id = ?
            ORDER BY link_order, created_at, rowid
            """,
            (source_instance_id,),
        )
        links = []
        for row in rows:
            link = self._row_to_link(row)
            link.target = self.instances.get(link.target_instance_id)
            links.append(link)
        return links

    def find_by_area(self, area_id: str) -> list[ActionLink]:
        rows = self.backend.fetchall(
            "SELECT * FROM action_links WHERE area_id = ? ORDER BY link_order, rowid",
            (area_id,),
        )
        return [self._row_to_link(row) for row in rows]

    def delete(self, source_instance_id: str, target_instance_id: str) -> bool:
        with self.backend.transaction():
            cursor = self.backend.execute(
                """
                DELETE FROM action_links
                WHERE source_instance_id = ? AND target_instance_id = ?
                """,
                (source_instance_id, target_instance_id),
            )
        return cursor.rowcount > 0

    def _row_to_link(self, row: dict) -> ActionLink:
        return ActionLink(
            source_instance_id=row["source_instance_id"],
            target_instance_id=row["target_instance_id"],
            area_id=row["area_id"],
            mapping=_load_json(row.get("mapping")),
            condition=_load_json(row.get("condition")),
            link_type=row.get("link_type") or "chain",
            order=row.get("link_order") or 0,
            created_at=_parse_datetime(row.get("created_at")) or datetime.now(UTC),
        )
