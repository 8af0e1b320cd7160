from __future__ import annotations

from pathlib import Path

from permisoria.domain.models.certificate import VerificationCertificate
from permisoria.infrastructure.db.sqlite import get_connection


class CertificateRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def insert_or_get(self, certificate: VerificationCertificate) -> VerificationCertificate:
        """Insert unless the attempt already has a certificate; return the stored row either way."""
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO verification_certificates (
                    id,
                    verification_id,
                    certificate_number,
                    issued_at,
                    expires_at,
                    verification_hash,
                    validation_url,
                    issued_by,
                    revoked_at,
                    revoked_reason,
                    revoked_by
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, NULL, NULL, NULL)
                ON CONFLICT(verification_id) DO NOTHING
                """,
                (
                    certificate.id,
                    certificate.verification_id,
                    certificate.certificate_number,
                    certificate.issued_at,
                    certificate.expires_at,
                    certificate.verification_hash,
                    certificate.validation_url,
                    certificate.issued_by,
                ),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM verification_certificates WHERE verification_id = ?",
                (certificate.verification_id,),
            ).fetchone()
        return self._to_certificate(row)

    def get_by_id(self, certificate_id: str) -> VerificationCertificate | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM verification_certificates WHERE id = ?",
                (certificate_id,),
            ).fetchone()
        return self._to_certificate(row) if row else None

    def get_by_verification_id(self, verification_id: str) -> VerificationCertificate | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM verification_certificates WHERE verification_id = ?",
                (verification_id,),
            ).fetchone()
        return self._to_certificate(row) if row else None

    def get_by_hash(self, verification_hash: str) -> VerificationCertificate | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM verification_certificates WHERE verification_hash = ?",
                (verification_hash,),
            ).fetchone()
        return self._to_certificate(row) if row else None

    def revoke(self, certificate_id: str, revoked_at: str, reason: str, revoked_by: str) -> bool:
        """Stamp revocation once; returns False when the certificate was already revoked."""
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE verification_certificates
                SET revoked_at = ?, revoked_reason = ?, revoked_by = ?
                WHERE id = ? AND revoked_at IS NULL
                """,
                (revoked_at, reason, revoked_by, certificate_id),
            )
            conn.commit()
        return cursor.rowcount == 1

    @staticmethod
    def _to_certificate(row) -> VerificationCertificate:
        return VerificationCertificate(
            id=row["id"],
            verification_id=row["verification_id"],
            certificate_number=row["certificate_number"],
            issued_at=row["issued_at"],
            expires_at=row["expires_at"],
            verification_hash=row["verification_hash"],
            validation_url=row["validation_url"],
            issued_by=row["issued_by"],
            revoked_at=row["revoked_at"],
            revoked_reason=row["revoked_reason"],
            revoked_by=row["revoked_by"],
        )
