"""Data Access Layer for the local document store.

Responsibilities
----------------
- Store JSON documents per collection, keyed by an opaque string id.
- Evaluate equality-filtered, single-field ordered queries via SQLite's JSON1
  functions so queries return records exactly as a document database would.
- Resolve server timestamp fields at commit time inside the insert statement.
- Persist local auth accounts.
"""

from __future__ import annotations

import json
from pathlib import Path
import re
import sqlite3
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .schema import BASIC_UTC_NOW

UTC_NOW_SQL = BASIC_UTC_NOW
_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _json_path(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise ValueError(f"invalid field path '{field}'")
    return f"$.{field}"


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path

    # ------------------------------------------------------------------
    # Connection helpers
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    # ------------------------------------------------------------------
    # Documents
    def insert_document(
        self,
        collection: str,
        doc_id: str,
        owner_uid: str,
        data: Dict[str, Any],
        server_timestamp_fields: Sequence[str] = (),
    ) -> None:
        """Insert a document; listed fields are set to the commit time."""
        expr = "?"
        params: List[Any] = [json.dumps(data)]
        for field in server_timestamp_fields:
            expr = f"json_set({expr}, ?, {UTC_NOW_SQL})"
            params.append(_json_path(field))
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                INSERT INTO documents (collection, id, owner_uid, data)
                VALUES (?, ?, ?, {expr})
                """,
                (collection, doc_id, owner_uid, *params),
            )
            conn.commit()

    def get_document(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT id, owner_uid, data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            row = cur.fetchone()
            if not row:
                return None
            return {
                "id": row["id"],
                "owner_uid": row["owner_uid"],
                "data": json.loads(row["data"]),
            }

    def delete_document(
        self, collection: str, doc_id: str, owner_uid: Optional[str] = None
    ) -> None:
        """Delete one document.

        Raises ValueError("document not found") for unknown ids and
        PermissionError when `owner_uid` is given and does not match.
        """
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT owner_uid FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            row = cur.fetchone()
            if not row:
                raise ValueError("document not found")
            if owner_uid is not None and row["owner_uid"] != owner_uid:
                raise PermissionError("document belongs to another user")
            cur.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            if cur.rowcount == 0:
                raise ValueError("document not found")
            conn.commit()

    def query_documents(
        self,
        collection: str,
        where: Sequence[Tuple[str, Any]] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Tuple[str, Dict[str, Any]]]:
        """Return (id, data) pairs matching all equality filters.

        Ties on the ordering field fall back to insertion order in the same
        direction so results are deterministic.
        """
        query = "SELECT id, data FROM documents WHERE collection = ?"
        params: List[Any] = [collection]
        for field, value in where:
            query += " AND json_extract(data, ?) = ?"
            params.extend([_json_path(field), value])
        direction = "DESC" if descending else "ASC"
        if order_by is not None:
            query += f" ORDER BY json_extract(data, ?) {direction}, seq {direction}"
            params.append(_json_path(order_by))
        else:
            query += f" ORDER BY seq {direction}"
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(query, params)
            return [(r["id"], json.loads(r["data"])) for r in cur.fetchall()]

    def count_documents(self, collection: str) -> int:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT COUNT(*) FROM documents WHERE collection = ?", (collection,)
            )
            return int(cur.fetchone()[0])

    # ------------------------------------------------------------------
    # Users
    def create_user(self, uid: str, email: str, password_hash: str, salt: str) -> None:
        """Insert a user; raises ValueError when the email is taken."""
        with self._connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute(
                    "INSERT INTO users (uid, email, password_hash, salt) VALUES (?, ?, ?, ?)",
                    (uid, email, password_hash, salt),
                )
            except sqlite3.IntegrityError as e:
                raise ValueError("email already registered") from e
            conn.commit()

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        with self._connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT * FROM users WHERE email = ?", (email,))
            row = cur.fetchone()
            return dict(row) if row else None


__all__ = ["Database"]
