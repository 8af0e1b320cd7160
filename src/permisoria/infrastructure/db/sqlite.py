from __future__ import annotations

import sqlite3
from pathlib import Path

from permisoria.core.config import read_float_env, read_int_env

DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS = 30.0
DEFAULT_SQLITE_BUSY_TIMEOUT_MS = 30_000

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

# (table, column, declaration) added after the first release of schema.sql.
_ADDED_COLUMNS = (
    ("verification_history", "step_number", "INTEGER"),
    ("verification_certificates", "revoked_by", "TEXT"),
)


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Open a connection with foreign keys, WAL and a busy timeout.

    Writers racing on the same database wait up to
    ``PERMISORIA_SQLITE_BUSY_TIMEOUT_MS`` for the lock instead of failing.
    """
    conn = sqlite3.connect(
        db_path,
        timeout=read_float_env("PERMISORIA_SQLITE_CONNECT_TIMEOUT_SECONDS", DEFAULT_SQLITE_CONNECT_TIMEOUT_SECONDS),
    )
    conn.row_factory = sqlite3.Row
    busy_timeout_ms = read_int_env("PERMISORIA_SQLITE_BUSY_TIMEOUT_MS", DEFAULT_SQLITE_BUSY_TIMEOUT_MS)
    for pragma in (
        "foreign_keys = ON",
        "journal_mode = WAL",
        "synchronous = NORMAL",
        f"busy_timeout = {busy_timeout_ms}",
    ):
        conn.execute(f"PRAGMA {pragma};")
    return conn


def initialize_schema(db_path: Path, schema_path: Path = SCHEMA_PATH) -> None:
    with get_connection(db_path) as conn:
        conn.executescript(schema_path.read_text(encoding="utf-8"))
        for table, column, declaration in _ADDED_COLUMNS:
            existing = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
            if column not in existing:
                conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {declaration}")
        conn.commit()
