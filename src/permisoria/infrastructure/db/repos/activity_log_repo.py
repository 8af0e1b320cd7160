from __future__ import annotations

from pathlib import Path

from permisoria.domain.models.verification import ActivityLogEntry
from permisoria.infrastructure.db.sqlite import get_connection


class ActivityLogRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert_entry(self, entry: ActivityLogEntry) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO activity_logs (
                    id,
                    business_owner_id,
                    entity_type,
                    entity_id,
                    action,
                    action_description,
                    performed_by,
                    details_json,
                    performed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.business_owner_id,
                    entry.entity_type,
                    entry.entity_id,
                    entry.action,
                    entry.action_description,
                    entry.performed_by,
                    entry.details_json,
                    entry.performed_at,
                ),
            )
            conn.commit()

    def list_for_owner(
        self,
        owner_id: str,
        limit: int = 100,
        offset: int = 0,
        *,
        entity_type: str | None = None,
        action: str | None = None,
        since: str | None = None,
        until: str | None = None,
    ) -> list[ActivityLogEntry]:
        where, params = _owner_filters(owner_id, entity_type, action, since, until)
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM activity_logs
                WHERE {where}
                ORDER BY performed_at DESC, rowid DESC
                LIMIT ? OFFSET ?
                """,
                (*params, limit, offset),
            ).fetchall()
        return [self._to_entry(row) for row in rows]

    def count_for_owner(
        self,
        owner_id: str,
        *,
        entity_type: str | None = None,
        action: str | None = None,
        since: str | None = None,
        until: str | None = None,
    ) -> int:
        where, params = _owner_filters(owner_id, entity_type, action, since, until)
        with get_connection(self.db_path) as conn:
            row = conn.execute(f"SELECT COUNT(*) AS n FROM activity_logs WHERE {where}", params).fetchone()
        return int(row["n"])

    def summarize_owner(self, owner_id: str, recent_since: str) -> dict[str, object]:
        with get_connection(self.db_path) as conn:
            by_entity_type = conn.execute(
                """
                SELECT entity_type AS key, COUNT(*) AS n FROM activity_logs
                WHERE business_owner_id = ?
                GROUP BY entity_type
                """,
                (owner_id,),
            ).fetchall()
            by_action = conn.execute(
                """
                SELECT action AS key, COUNT(*) AS n FROM activity_logs
                WHERE business_owner_id = ?
                GROUP BY action
                """,
                (owner_id,),
            ).fetchall()
            recent = conn.execute(
                "SELECT COUNT(*) AS n FROM activity_logs WHERE business_owner_id = ? AND performed_at >= ?",
                (owner_id, recent_since),
            ).fetchone()
        return {
            "total": sum(int(row["n"]) for row in by_action),
            "byEntityType": {row["key"]: int(row["n"]) for row in by_entity_type},
            "byAction": {row["key"]: int(row["n"]) for row in by_action},
            "recentActivity": int(recent["n"]),
        }

    @staticmethod
    def _to_entry(row) -> ActivityLogEntry:
        return ActivityLogEntry(
            id=row["id"],
            business_owner_id=row["business_owner_id"],
            entity_type=row["entity_type"],
            entity_id=row["entity_id"],
            action=row["action"],
            action_description=row["action_description"],
            performed_by=row["performed_by"],
            details_json=row["details_json"],
            performed_at=row["performed_at"],
        )


def _owner_filters(
    owner_id: str,
    entity_type: str | None,
    action: str | None,
    since: str | None,
    until: str | None,
) -> tuple[str, tuple[str, ...]]:
    clauses = ["business_owner_id = ?"]
    params: list[str] = [owner_id]
    if entity_type:
        clauses.append("entity_type = ?")
        params.append(entity_type)
    if action:
        clauses.append("action = ?")
        params.append(action)
    if since:
        clauses.append("performed_at >= ?")
        params.append(since)
    if until:
        clauses.append("performed_at <= ?")
        params.append(until)
    return " AND ".join(clauses), tuple(params)
