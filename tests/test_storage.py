"""Tests for SQLite credential storage."""

import sqlite3

import pytest

from autoreply_bot.exceptions import StoreError
from autoreply_bot.storage import SQLiteCredentialStore, SQLiteFileStore


@pytest.fixture
def kv_store(tmp_path):
    store = SQLiteCredentialStore(str(tmp_path / "auth.db"))
    store.init()
    return store


@pytest.fixture
def file_store(tmp_path):
    store = SQLiteFileStore(str(tmp_path / "auth.db"))
    store.init()
    return store


def _count(db_path, table, column, value):
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute(
            f"SELECT COUNT(*) FROM {table} WHERE {column} = ?", (value,)
        ).fetchone()[0]
    finally:
        conn.close()


class TestSQLiteCredentialStore:
    """Test key/value credential storage."""

    def test_read_absent_returns_none(self, kv_store):
        assert kv_store.read("creds") is None

    def test_write_then_read(self, kv_store):
        kv_store.write("creds", '{"me": {"id": "1"}}')
        assert kv_store.read("creds") == '{"me": {"id": "1"}}'

    def test_repeated_writes_upsert(self, kv_store):
        """After N writes to one key exactly one record holds the last value."""
        for i in range(5):
            kv_store.write("creds", f"value-{i}")

        assert kv_store.read("creds") == "value-4"
        assert _count(kv_store.db_path, "auth", "key", "creds") == 1

    def test_init_is_idempotent(self, kv_store):
        kv_store.write("creds", "x")
        kv_store.init()
        assert kv_store.read("creds") == "x"

    def test_keys_and_delete(self, kv_store):
        kv_store.write("b", "2")
        kv_store.write("a", "1")
        assert kv_store.keys() == ["a", "b"]

        kv_store.delete("a")
        assert kv_store.keys() == ["b"]
        kv_store.delete("missing")

    def test_items_filters_by_prefix(self, kv_store):
        kv_store.write("creds", "c")
        kv_store.write("keys:session:1", "s")
        kv_store.write("keys:pre-key:2", "p")

        assert kv_store.items("keys:") == {"keys:pre-key:2": "p", "keys:session:1": "s"}
        assert kv_store.items() == {
            "creds": "c",
            "keys:pre-key:2": "p",
            "keys:session:1": "s",
        }

    def test_clear(self, kv_store):
        kv_store.write("creds", "x")
        kv_store.write("keys:session:1", "y")
        kv_store.clear()
        assert kv_store.keys() == []

    def test_creates_parent_directory(self, tmp_path):
        store = SQLiteCredentialStore(str(tmp_path / "nested" / "dir" / "auth.db"))
        store.init()
        store.write("creds", "x")
        assert (tmp_path / "nested" / "dir" / "auth.db").exists()

    def test_read_without_table_raises_store_error(self, tmp_path):
        """A broken store is an error, not an absent record."""
        store = SQLiteCredentialStore(str(tmp_path / "auth.db"))
        with pytest.raises(StoreError):
            store.read("creds")


class TestSQLiteFileStore:
    """Test filename/blob storage."""

    def test_read_absent_returns_none(self, file_store):
        assert file_store.read_file("creds.json") is None

    def test_write_then_read(self, file_store):
        file_store.write_file("creds.json", b'{"a": 1}')
        assert file_store.read_file("creds.json") == b'{"a": 1}'

    def test_binary_content(self, file_store):
        content = bytes(range(256))
        file_store.write_file("blob.bin", content)
        assert file_store.read_file("blob.bin") == content

    def test_repeated_writes_upsert(self, file_store):
        for i in range(3):
            file_store.write_file("creds.json", f"v{i}".encode())

        assert file_store.read_file("creds.json") == b"v2"
        assert _count(file_store.db_path, "auth_files", "filename", "creds.json") == 1

    def test_list_all_delete_and_clear(self, file_store):
        file_store.write_file("creds.json", b"c")
        file_store.write_file("session-1.json", b"s")
        assert file_store.list_all() == {"creds.json": b"c", "session-1.json": b"s"}

        file_store.delete_file("session-1.json")
        assert file_store.list_all() == {"creds.json": b"c"}

        file_store.clear()
        assert file_store.list_all() == {}

    def test_shares_database_with_credential_store(self, tmp_path):
        db = str(tmp_path / "auth.db")
        kv, files = SQLiteCredentialStore(db), SQLiteFileStore(db)
        kv.init()
        files.init()

        kv.write("creds", "x")
        files.write_file("creds.json", b"y")

        assert kv.read("creds") == "x"
        assert files.read_file("creds.json") == b"y"
