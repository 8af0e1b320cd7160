from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class VerificationCertificate:
    id: str
    verification_id: str
    certificate_number: str
    issued_at: str
    expires_at: str
    verification_hash: str
    validation_url: str
    issued_by: str
    revoked_at: str | None
    revoked_reason: str | None
    revoked_by: str | None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None
