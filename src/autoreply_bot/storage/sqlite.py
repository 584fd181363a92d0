"""SQLite credential storage for local runs."""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from ..exceptions import StoreConnectionError, StoreError
from .base import AUTH_TABLE, FILES_TABLE, CredentialStore, FileStore

logger = logging.getLogger(__name__)


class _SQLiteDatabase:
    """Shared connection handling for the SQLite stores."""

    def __init__(self, db_path: str):
        """
        Initialize SQLite storage.

        Args:
            db_path: Database file path (created along with its directory)
        """
        self.db_path = Path(db_path).expanduser()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection; commit on success, roll back on error."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
        except (OSError, sqlite3.Error) as e:
            raise StoreConnectionError(f"Cannot open {self.db_path}: {e}") from e

        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"SQLite operation failed: {e}") from e
        finally:
            conn.close()


class SQLiteCredentialStore(_SQLiteDatabase, CredentialStore):
    """
    Key/value credentials in a local SQLite file.

    Usage:
        store = SQLiteCredentialStore("auth.db")
        store.init()
        store.write("creds", '{"me": {...}}')
    """

    def init(self) -> None:
        with self._get_connection() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {AUTH_TABLE} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    key TEXT UNIQUE NOT NULL,
                    value TEXT
                )
            """)
        logger.debug(f"Initialized credential table in {self.db_path}")

    def read(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT value FROM {AUTH_TABLE} WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def write(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                f"""INSERT INTO {AUTH_TABLE} (key, value) VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value""",
                (key, value),
            )
        logger.debug(f"Stored credential record '{key}'")

    def delete(self, key: str) -> None:
        with self._get_connection() as conn:
            conn.execute(f"DELETE FROM {AUTH_TABLE} WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute(f"SELECT key FROM {AUTH_TABLE} ORDER BY key").fetchall()
        return [row[0] for row in rows]

    def items(self, prefix: str = "") -> Dict[str, str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT key, value FROM {AUTH_TABLE} WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix),
            ).fetchall()
        return {key: value for key, value in rows if value is not None}

    def clear(self) -> None:
        with self._get_connection() as conn:
            conn.execute(f"DELETE FROM {AUTH_TABLE}")
        logger.info(f"Cleared credentials from {self.db_path}")


class SQLiteFileStore(_SQLiteDatabase, FileStore):
    """Credential files as BLOBs in a local SQLite file."""

    def init(self) -> None:
        with self._get_connection() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {FILES_TABLE} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    filename TEXT UNIQUE NOT NULL,
                    content BLOB
                )
            """)
        logger.debug(f"Initialized credential file table in {self.db_path}")

    def read_file(self, filename: str) -> Optional[bytes]:
        with self._get_connection() as conn:
            row = conn.execute(
                f"SELECT content FROM {FILES_TABLE} WHERE filename = ?", (filename,)
            ).fetchone()
        return bytes(row[0]) if row else None

    def write_file(self, filename: str, content: bytes) -> None:
        with self._get_connection() as conn:
            conn.execute(
                f"""INSERT INTO {FILES_TABLE} (filename, content) VALUES (?, ?)
                    ON CONFLICT(filename) DO UPDATE SET content = excluded.content""",
                (filename, sqlite3.Binary(content)),
            )

    def delete_file(self, filename: str) -> None:
        with self._get_connection() as conn:
            conn.execute(f"DELETE FROM {FILES_TABLE} WHERE filename = ?", (filename,))

    def list_all(self) -> Dict[str, bytes]:
        with self._get_connection() as conn:
            rows = conn.execute(
                f"SELECT filename, content FROM {FILES_TABLE} ORDER BY filename"
            ).fetchall()
        return {name: bytes(content) for name, content in rows}

    def clear(self) -> None:
        with self._get_connection() as conn:
            conn.execute(f"DELETE FROM {FILES_TABLE}")
        logger.info(f"Cleared credential files from {self.db_path}")
