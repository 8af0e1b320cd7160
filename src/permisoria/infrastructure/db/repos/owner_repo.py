from __future__ import annotations

from pathlib import Path

from permisoria.domain.models.owner import OWNER_FIELD_NAMES, BusinessOwner, OwnerDocument
from permisoria.infrastructure.db.sqlite import get_connection


class OwnerRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert_owner(self, owner: BusinessOwner) -> None:
        columns = (
            "id",
            "assigned_manager_id",
            *OWNER_FIELD_NAMES,
            "verification_status",
            "last_verified_at",
            "verification_expires_at",
            "current_verification_attempt_id",
            "version",
            "created_at",
            "updated_at",
            "deleted_at",
        )
        placeholders = ", ".join("?" for _ in columns)
        with get_connection(self.db_path) as conn:
            conn.execute(
                f"INSERT INTO business_owners ({', '.join(columns)}) VALUES ({placeholders})",
                tuple(getattr(owner, column) for column in columns),
            )
            conn.commit()

    def get_by_id(self, owner_id: str) -> BusinessOwner | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM business_owners WHERE id = ? AND deleted_at IS NULL",
                (owner_id,),
            ).fetchone()
        return self._to_owner(row) if row else None

    def find_owner_managed_by(self, owner_id: str, actor_id: str) -> BusinessOwner | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT * FROM business_owners
                WHERE id = ? AND assigned_manager_id = ? AND deleted_at IS NULL
                """,
                (owner_id, actor_id),
            ).fetchone()
        return self._to_owner(row) if row else None

    def list_owners_managed_by(self, actor_id: str, limit: int = 100) -> list[BusinessOwner]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM business_owners
                WHERE assigned_manager_id = ? AND deleted_at IS NULL
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (actor_id, limit),
            ).fetchall()
        return [self._to_owner(row) for row in rows]

    def set_current_attempt(
        self,
        owner_id: str,
        attempt_id: str | None,
        verification_status: str,
        updated_at: str,
    ) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE business_owners
                SET current_verification_attempt_id = ?,
                    verification_status = ?,
                    version = version + 1,
                    updated_at = ?
                WHERE id = ?
                """,
                (attempt_id, verification_status, updated_at, owner_id),
            )
            conn.commit()

    def insert_document(self, document: OwnerDocument) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO documents (id, owner_id, filename, category, storage_ref, uploaded_at, deleted_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.owner_id,
                    document.filename,
                    document.category,
                    document.storage_ref,
                    document.uploaded_at,
                    document.deleted_at,
                ),
            )
            conn.commit()

    def get_document(self, document_id: str) -> OwnerDocument | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ? AND deleted_at IS NULL",
                (document_id,),
            ).fetchone()
        return self._to_document(row) if row else None

    def list_documents(self, owner_id: str) -> list[OwnerDocument]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM documents
                WHERE owner_id = ? AND deleted_at IS NULL
                ORDER BY uploaded_at DESC
                """,
                (owner_id,),
            ).fetchall()
        return [self._to_document(row) for row in rows]

    @staticmethod
    def _to_owner(row) -> BusinessOwner:
        return BusinessOwner(
            id=row["id"],
            assigned_manager_id=row["assigned_manager_id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            paternal_last_name=row["paternal_last_name"],
            maternal_last_name=row["maternal_last_name"],
            email=row["email"],
            phone=row["phone"],
            date_of_birth=row["date_of_birth"],
            tax_id=row["tax_id"],
            id_number=row["id_number"],
            id_type=row["id_type"],
            address_line1=row["address_line1"],
            address_line2=row["address_line2"],
            city=row["city"],
            zip_code=row["zip_code"],
            verification_status=row["verification_status"],
            last_verified_at=row["last_verified_at"],
            verification_expires_at=row["verification_expires_at"],
            current_verification_attempt_id=row["current_verification_attempt_id"],
            version=row["version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            deleted_at=row["deleted_at"],
        )

    @staticmethod
    def _to_document(row) -> OwnerDocument:
        return OwnerDocument(
            id=row["id"],
            owner_id=row["owner_id"],
            filename=row["filename"],
            category=row["category"],
            storage_ref=row["storage_ref"],
            uploaded_at=row["uploaded_at"],
            deleted_at=row["deleted_at"],
        )
