import sqlite3

import pytest

from app.db.migrate import CURRENT_SCHEMA_VERSION, apply_migrations


def test_fresh_database_is_current(tmp_path):
    db_path = tmp_path / "fresh.sqlite3"
    assert apply_migrations(db_path) == CURRENT_SCHEMA_VERSION
    # second run is a no-op
    assert apply_migrations(db_path) == CURRENT_SCHEMA_VERSION


def test_owner_index_is_created(tmp_path):
    db_path = tmp_path / "idx.sqlite3"
    apply_migrations(db_path)
    conn = sqlite3.connect(db_path)
    names = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")}
    conn.close()
    assert "idx_documents_owner" in names


def test_newer_schema_is_refused(tmp_path):
    db_path = tmp_path / "future.sqlite3"
    apply_migrations(db_path)
    conn = sqlite3.connect(db_path)
    conn.execute("UPDATE metadata SET value = '99' WHERE key = 'schema_version'")
    conn.commit()
    conn.close()
    with pytest.raises(RuntimeError):
        apply_migrations(db_path)
