from __future__ import annotations

import secrets
import uuid


def new_uuid() -> str:
    """Generate a new UUID4 as a string."""
    return str(uuid.uuid4())


def new_token() -> str:
    """Generate an opaque bearer token for an actor."""
    return secrets.token_urlsafe(32)


def new_certificate_number(year: int) -> str:
    return f"PR-BO-{year}-{secrets.randbelow(900_000) + 100_000}"
