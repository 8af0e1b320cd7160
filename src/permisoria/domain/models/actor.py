from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class Actor:
    id: str
    display_name: str
    role: str
    created_at: str
