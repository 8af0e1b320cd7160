from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from permisoria.domain.models.verification import (
    DocumentVerification,
    VerificationAttempt,
    VerificationHistoryEvent,
)
from permisoria.infrastructure.db.sqlite import get_connection


@dataclass(slots=True)
class OwnerStatusUpdate:
    verification_status: str
    last_verified_at: str | None
    verification_expires_at: str | None
    clear_current_attempt: bool
    updated_at: str


class VerificationRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert_attempt(self, attempt: VerificationAttempt) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO verification_attempts (
                    id,
                    business_owner_id,
                    initiated_by,
                    status,
                    sections_json,
                    draft_data_json,
                    decision,
                    decision_reason,
                    created_at,
                    last_updated,
                    completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    attempt.id,
                    attempt.business_owner_id,
                    attempt.initiated_by,
                    attempt.status,
                    attempt.sections_json,
                    attempt.draft_data_json,
                    attempt.decision,
                    attempt.decision_reason,
                    attempt.created_at,
                    attempt.last_updated,
                    attempt.completed_at,
                ),
            )
            conn.commit()

    def get_attempt(self, attempt_id: str) -> VerificationAttempt | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM verification_attempts WHERE id = ?",
                (attempt_id,),
            ).fetchone()
        return self._to_attempt(row) if row else None

    def get_latest_attempt(self, owner_id: str) -> VerificationAttempt | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT * FROM verification_attempts
                WHERE business_owner_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT 1
                """,
                (owner_id,),
            ).fetchone()
        return self._to_attempt(row) if row else None

    def get_latest_verified_attempt(self, owner_id: str) -> VerificationAttempt | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT * FROM verification_attempts
                WHERE business_owner_id = ? AND decision = 'VERIFIED' AND completed_at IS NOT NULL
                ORDER BY completed_at DESC, rowid DESC
                LIMIT 1
                """,
                (owner_id,),
            ).fetchone()
        return self._to_attempt(row) if row else None

    def list_completed_attempts(self, owner_id: str, limit: int = 5) -> list[VerificationAttempt]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM verification_attempts
                WHERE business_owner_id = ? AND completed_at IS NOT NULL
                ORDER BY completed_at DESC, rowid DESC
                LIMIT ?
                """,
                (owner_id, limit),
            ).fetchall()
        return [self._to_attempt(row) for row in rows]

    def count_attempts(self, owner_id: str) -> int:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM verification_attempts WHERE business_owner_id = ?",
                (owner_id,),
            ).fetchone()
        return int(row[0])

    def update_draft(self, attempt_id: str, draft_data_json: str, updated_at: str) -> bool:
        """Overwrite the stored draft; returns False when the attempt is already finalized."""
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE verification_attempts
                SET draft_data_json = ?, last_updated = ?
                WHERE id = ? AND completed_at IS NULL
                """,
                (draft_data_json, updated_at, attempt_id),
            )
            conn.commit()
        return cursor.rowcount == 1

    def insert_history(self, event: VerificationHistoryEvent) -> None:
        with get_connection(self.db_path) as conn:
            self._insert_history(conn, event)
            conn.commit()

    def list_history(self, attempt_id: str, limit: int = 20) -> list[VerificationHistoryEvent]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM verification_history
                WHERE verification_id = ?
                ORDER BY performed_at DESC, rowid DESC
                LIMIT ?
                """,
                (attempt_id, limit),
            ).fetchall()
        return [self._to_history(row) for row in rows]

    def upsert_document_verification(self, record: DocumentVerification) -> DocumentVerification:
        with get_connection(self.db_path) as conn:
            self._upsert_document_verification(conn, record)
            conn.commit()
            row = conn.execute(
                """
                SELECT * FROM document_verifications
                WHERE verification_id = ? AND document_id = ?
                """,
                (record.verification_id, record.document_id),
            ).fetchone()
        return self._to_document_verification(row)

    def list_document_verifications(self, attempt_id: str) -> list[DocumentVerification]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT * FROM document_verifications
                WHERE verification_id = ?
                ORDER BY verified_at DESC, rowid DESC
                """,
                (attempt_id,),
            ).fetchall()
        return [self._to_document_verification(row) for row in rows]

    def record_decision(
        self,
        *,
        attempt_id: str,
        owner_id: str,
        decision: str,
        decision_reason: str | None,
        sections_json: str,
        decided_at: str,
        finalize: bool,
        document_verifications: list[DocumentVerification],
        history_event: VerificationHistoryEvent,
        owner_update: OwnerStatusUpdate,
    ) -> bool:
        """Apply a decision in one transaction.

        The attempt row is only touched while ``completed_at IS NULL``; when
        that guard matches nothing the transaction is rolled back and False is
        returned so the caller can report a conflict.
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                """
                UPDATE verification_attempts
                SET status = ?,
                    decision = ?,
                    decision_reason = ?,
                    sections_json = ?,
                    last_updated = ?,
                    completed_at = ?
                WHERE id = ? AND completed_at IS NULL
                """,
                (
                    decision,
                    decision,
                    decision_reason,
                    sections_json,
                    decided_at,
                    decided_at if finalize else None,
                    attempt_id,
                ),
            )
            if cursor.rowcount != 1:
                conn.rollback()
                return False

            for record in document_verifications:
                self._upsert_document_verification(conn, record)
            self._insert_history(conn, history_event)

            if owner_update.clear_current_attempt:
                conn.execute(
                    """
                    UPDATE business_owners
                    SET verification_status = ?,
                        last_verified_at = COALESCE(?, last_verified_at),
                        verification_expires_at = COALESCE(?, verification_expires_at),
                        current_verification_attempt_id = NULL,
                        version = version + 1,
                        updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        owner_update.verification_status,
                        owner_update.last_verified_at,
                        owner_update.verification_expires_at,
                        owner_update.updated_at,
                        owner_id,
                    ),
                )
            else:
                conn.execute(
                    """
                    UPDATE business_owners
                    SET verification_status = ?, version = version + 1, updated_at = ?
                    WHERE id = ?
                    """,
                    (owner_update.verification_status, owner_update.updated_at, owner_id),
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
        return True

    @staticmethod
    def _insert_history(conn: sqlite3.Connection, event: VerificationHistoryEvent) -> None:
        conn.execute(
            """
            INSERT INTO verification_history (
                id, verification_id, action, performed_by, details_json, step_number, performed_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.verification_id,
                event.action,
                event.performed_by,
                event.details_json,
                event.step_number,
                event.performed_at,
            ),
        )

    @staticmethod
    def _upsert_document_verification(conn: sqlite3.Connection, record: DocumentVerification) -> None:
        conn.execute(
            """
            INSERT INTO document_verifications (
                id, verification_id, document_id, status, notes, verified_by, verified_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(verification_id, document_id) DO UPDATE SET
                status = excluded.status,
                notes = excluded.notes,
                verified_by = excluded.verified_by,
                verified_at = excluded.verified_at
            """,
            (
                record.id,
                record.verification_id,
                record.document_id,
                record.status,
                record.notes,
                record.verified_by,
                record.verified_at,
            ),
        )

    @staticmethod
    def _to_attempt(row) -> VerificationAttempt:
        return VerificationAttempt(
            id=row["id"],
            business_owner_id=row["business_owner_id"],
            initiated_by=row["initiated_by"],
            status=row["status"],
            sections_json=row["sections_json"],
            draft_data_json=row["draft_data_json"],
            decision=row["decision"],
            decision_reason=row["decision_reason"],
            created_at=row["created_at"],
            last_updated=row["last_updated"],
            completed_at=row["completed_at"],
        )

    @staticmethod
    def _to_history(row) -> VerificationHistoryEvent:
        return VerificationHistoryEvent(
            id=row["id"],
            verification_id=row["verification_id"],
            action=row["action"],
            performed_by=row["performed_by"],
            details_json=row["details_json"],
            step_number=row["step_number"],
            performed_at=row["performed_at"],
        )

    @staticmethod
    def _to_document_verification(row) -> DocumentVerification:
        return DocumentVerification(
            id=row["id"],
            verification_id=row["verification_id"],
            document_id=row["document_id"],
            status=row["status"],
            notes=row["notes"],
            verified_by=row["verified_by"],
            verified_at=row["verified_at"],
        )
