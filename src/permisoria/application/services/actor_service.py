from __future__ import annotations

from dataclasses import dataclass

from permisoria.core.errors import UnauthorizedError, ValidationError
from permisoria.core.ids import new_token, new_uuid
from permisoria.core.time import now_utc_iso
from permisoria.domain.models.actor import Actor
from permisoria.infrastructure.db.repos.actor_repo import ActorRepo

ACTOR_ROLES = ("permit_manager", "admin")


@dataclass(slots=True)
class NewActor:
    actor: Actor
    token: str


class ActorService:
    def __init__(self, actor_repo: ActorRepo) -> None:
        self.actor_repo = actor_repo

    def add_actor(self, display_name: str, role: str = "permit_manager", token: str | None = None) -> NewActor:
        name = display_name.strip()
        if not name:
            raise ValidationError("Actor name is required")
        if role not in ACTOR_ROLES:
            raise ValidationError(f"Unknown role: {role} (expected one of {', '.join(ACTOR_ROLES)})")

        actor = Actor(id=new_uuid(), display_name=name, role=role, created_at=now_utc_iso())
        issued_token = token or new_token()
        self.actor_repo.insert_actor(actor, issued_token)
        return NewActor(actor=actor, token=issued_token)

    def get_current_actor(self, token: str | None) -> Actor:
        """Resolve a bearer token to its actor, or raise UnauthorizedError."""
        actor = self.actor_repo.get_by_token(token or "")
        if actor is None:
            raise UnauthorizedError("Authentication required")
        return actor
