from __future__ import annotations

from typing import Any

from permisoria.core.errors import NotFoundError, ValidationError
from permisoria.core.ids import new_uuid
from permisoria.core.time import now_utc_iso
from permisoria.domain.models.owner import OWNER_FIELD_NAMES, BusinessOwner, OwnerDocument
from permisoria.infrastructure.db.repos.actor_repo import ActorRepo
from permisoria.infrastructure.db.repos.owner_repo import OwnerRepo

DOCUMENT_CATEGORIES = ("identity", "address", "business", "other")


class OwnerService:
    def __init__(self, owner_repo: OwnerRepo, actor_repo: ActorRepo) -> None:
        self.owner_repo = owner_repo
        self.actor_repo = actor_repo

    def add_owner(self, manager_id: str, **fields: Any) -> BusinessOwner:
        if self.actor_repo.get_by_id(manager_id) is None:
            raise NotFoundError(f"Actor not found: {manager_id}")
        unknown = sorted(set(fields) - set(OWNER_FIELD_NAMES))
        if unknown:
            raise ValidationError(f"Unknown owner field(s): {', '.join(unknown)}")
        values: dict[str, str | None] = {}
        for name in OWNER_FIELD_NAMES:
            raw = fields.get(name)
            values[name] = (str(raw).strip() if raw is not None else "") or None
        if not values["first_name"] or not values["last_name"]:
            raise ValidationError("Owner first and last name are required")

        now = now_utc_iso()
        owner = BusinessOwner(
            id=new_uuid(),
            assigned_manager_id=manager_id,
            **values,
            verification_status="UNVERIFIED",
            last_verified_at=None,
            verification_expires_at=None,
            current_verification_attempt_id=None,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.owner_repo.insert_owner(owner)
        return owner

    def list_owners(self, manager_id: str, limit: int = 100) -> list[BusinessOwner]:
        return self.owner_repo.list_owners_managed_by(manager_id, limit=limit)

    def add_document(
        self,
        owner_id: str,
        filename: str,
        category: str,
        storage_ref: str | None = None,
    ) -> OwnerDocument:
        if self.owner_repo.get_by_id(owner_id) is None:
            raise NotFoundError(f"Business owner not found: {owner_id}")
        if category not in DOCUMENT_CATEGORIES:
            raise ValidationError(
                f"Unknown document category: {category} (expected one of {', '.join(DOCUMENT_CATEGORIES)})"
            )
        if not filename.strip():
            raise ValidationError("Document filename is required")

        document = OwnerDocument(
            id=new_uuid(),
            owner_id=owner_id,
            filename=filename.strip(),
            category=category,
            storage_ref=storage_ref,
            uploaded_at=now_utc_iso(),
        )
        self.owner_repo.insert_document(document)
        return document
