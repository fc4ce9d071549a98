"""Database schema DDL definitions and initialization utilities.

Tables:
  - documents: JSON records grouped by collection, with the owning uid
    lifted into a column so ownership checks stay cheap
  - users: email/password accounts for the local auth service
  - metadata: key/value store (schema version)
"""

from __future__ import annotations
import sqlite3
from typing import Sequence
from pathlib import Path

BASIC_UTC_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ','now')"

DOCUMENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS documents (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    owner_uid TEXT NOT NULL DEFAULT '',
    data TEXT NOT NULL, -- JSON object
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW}),
    UNIQUE(collection, id)
);
"""

USERS_DDL = f"""
CREATE TABLE IF NOT EXISTS users (
    uid TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
    password_hash TEXT NOT NULL, -- urlsafe base64 PBKDF2-SHA256
    salt TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

METADATA_DDL = f"""
CREATE TABLE IF NOT EXISTS metadata (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT ({BASIC_UTC_NOW})
);
"""

DOCUMENTS_OWNER_INDEX_DDL = (
    "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents(collection, owner_uid);"
)

DDL_ORDER: Sequence[str] = (
    DOCUMENTS_DDL,
    DOCUMENTS_OWNER_INDEX_DDL,
    USERS_DDL,
    METADATA_DDL,
)


def init_db(path: Path) -> None:
    """Create all tables idempotently.

    Parameters
    ----------
    path: Path to SQLite database file.
    """
    conn = sqlite3.connect(path)
    try:
        cur = conn.cursor()
        for ddl in DDL_ORDER:
            cur.execute(ddl)
        conn.commit()
    finally:
        conn.close()
