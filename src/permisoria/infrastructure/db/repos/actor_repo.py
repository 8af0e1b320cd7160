from __future__ import annotations

from pathlib import Path

from permisoria.core.hashing import compute_text_digest
from permisoria.domain.models.actor import Actor
from permisoria.infrastructure.db.sqlite import get_connection


class ActorRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert_actor(self, actor: Actor, token: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO actors (id, display_name, role, token_digest, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (actor.id, actor.display_name, actor.role, compute_text_digest(token), actor.created_at),
            )
            conn.commit()

    def get_by_id(self, actor_id: str) -> Actor | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM actors WHERE id = ?", (actor_id,)).fetchone()
        return self._to_actor(row) if row else None

    def get_by_token(self, token: str) -> Actor | None:
        if not token:
            return None
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM actors WHERE token_digest = ?",
                (compute_text_digest(token),),
            ).fetchone()
        return self._to_actor(row) if row else None

    @staticmethod
    def _to_actor(row) -> Actor:
        return Actor(
            id=row["id"],
            display_name=row["display_name"],
            role=row["role"],
            created_at=row["created_at"],
        )
