from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from permisoria.core.errors import ConfigurationError


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    data_dir: Path
    db_path: Path


DEFAULT_DATA_DIRNAME = ".permisoria"

NEEDS_INFO_NEW_ATTEMPT = "new_attempt"
NEEDS_INFO_REOPEN = "reopen"
NEEDS_INFO_POLICIES = {NEEDS_INFO_NEW_ATTEMPT, NEEDS_INFO_REOPEN}


@dataclass(frozen=True)
class AppSettings:
    """Runtime settings read from ``PERMISORIA_*`` environment variables.

    ``needs_info_policy`` decides what a NEEDS_INFO decision does to its
    attempt: ``new_attempt`` finalizes it (resuming starts a fresh attempt),
    ``reopen`` records the decision but keeps the same attempt editable.
    """

    environment: str = "development"
    autosave_seconds: float = 30.0
    idle_timeout_minutes: float = 30.0
    certificate_validity_days: int = 365
    verification_validity_days: int = 365
    public_base_url: str = "http://127.0.0.1:8765"
    needs_info_policy: str = NEEDS_INFO_NEW_ATTEMPT

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def reopen_on_needs_info(self) -> bool:
        return self.needs_info_policy == NEEDS_INFO_REOPEN


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    home_raw = os.getenv("PERMISORIA_HOME")
    if home_raw:
        data_dir = Path(home_raw).expanduser().resolve()
    else:
        data_dir = root / DEFAULT_DATA_DIRNAME

    return AppPaths(
        project_root=root,
        data_dir=data_dir,
        db_path=data_dir / "permisoria.db",
    )


def read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def load_settings() -> AppSettings:
    policy = os.getenv("PERMISORIA_NEEDS_INFO_POLICY", NEEDS_INFO_NEW_ATTEMPT).strip().lower()
    if policy not in NEEDS_INFO_POLICIES:
        raise ConfigurationError(
            f"Unsupported PERMISORIA_NEEDS_INFO_POLICY: {policy!r} "
            f"(expected one of {', '.join(sorted(NEEDS_INFO_POLICIES))})"
        )

    return AppSettings(
        environment=os.getenv("PERMISORIA_ENVIRONMENT", "development"),
        autosave_seconds=read_float_env("PERMISORIA_AUTOSAVE_SECONDS", 30.0),
        idle_timeout_minutes=read_float_env("PERMISORIA_IDLE_TIMEOUT_MINUTES", 30.0),
        certificate_validity_days=read_int_env("PERMISORIA_CERTIFICATE_VALIDITY_DAYS", 365),
        verification_validity_days=read_int_env("PERMISORIA_VERIFICATION_VALIDITY_DAYS", 365),
        public_base_url=os.getenv("PERMISORIA_PUBLIC_BASE_URL", "http://127.0.0.1:8765").rstrip("/"),
        needs_info_policy=policy,
    )
