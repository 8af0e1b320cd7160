from __future__ import annotations

from dataclasses import dataclass

# Owner columns that the verification wizard copies into a draft and lets the
# reviewer edit.
OWNER_FIELD_NAMES = (
    "first_name",
    "last_name",
    "paternal_last_name",
    "maternal_last_name",
    "email",
    "phone",
    "date_of_birth",
    "tax_id",
    "id_number",
    "id_type",
    "address_line1",
    "address_line2",
    "city",
    "zip_code",
)


@dataclass(slots=True)
class BusinessOwner:
    id: str
    assigned_manager_id: str
    first_name: str
    last_name: str
    paternal_last_name: str | None
    maternal_last_name: str | None
    email: str | None
    phone: str | None
    date_of_birth: str | None
    tax_id: str | None
    id_number: str | None
    id_type: str | None
    address_line1: str | None
    address_line2: str | None
    city: str | None
    zip_code: str | None
    verification_status: str
    last_verified_at: str | None
    verification_expires_at: str | None
    current_verification_attempt_id: str | None
    version: int
    created_at: str
    updated_at: str
    deleted_at: str | None = None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def owner_fields(self) -> dict[str, str]:
        return {name: str(getattr(self, name) or "") for name in OWNER_FIELD_NAMES}


@dataclass(slots=True)
class OwnerDocument:
    id: str
    owner_id: str
    filename: str
    category: str
    storage_ref: str | None
    uploaded_at: str
    deleted_at: str | None = None
