"""PostgreSQL credential storage."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import psycopg2

from ..exceptions import StoreConnectionError, StoreError
from .base import AUTH_TABLE, FILES_TABLE, CredentialStore, FileStore

logger = logging.getLogger(__name__)


class _PostgresDatabase:
    """
    One shared connection per store.

    A connection dropped after startup is reopened once on the next call;
    if that fails the call raises StoreConnectionError.
    """

    def __init__(self, connect_params: Dict[str, Any]):
        """
        Args:
            connect_params: Keyword arguments for ``psycopg2.connect``
                (see ``BotConfig.postgres_params``)
        """
        self._connect_params = connect_params
        self._conn = None

    def connect(self) -> None:
        """
        Open the connection.

        Raises:
            StoreConnectionError: If the server cannot be reached
        """
        try:
            self._conn = psycopg2.connect(**self._connect_params)
        except psycopg2.Error as e:
            raise StoreConnectionError(f"Cannot connect to PostgreSQL: {e}") from e
        logger.info("PostgreSQL connected")

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        """Cursor inside a transaction; committed on success."""
        if self._conn is None or self._conn.closed:
            if self._conn is not None:
                logger.warning("PostgreSQL connection lost, reconnecting")
            self.connect()

        try:
            with self._conn:
                with self._conn.cursor() as cur:
                    yield cur
        except (psycopg2.OperationalError, psycopg2.InterfaceError) as e:
            raise StoreConnectionError(f"PostgreSQL connection failed: {e}") from e
        except psycopg2.Error as e:
            raise StoreError(f"PostgreSQL operation failed: {e}") from e

    def close(self) -> None:
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
        self._conn = None


class PostgresCredentialStore(_PostgresDatabase, CredentialStore):
    """Key/value credentials in the ``auth`` table."""

    def init(self) -> None:
        with self._cursor() as cur:
            cur.execute(f"""
                CREATE TABLE IF NOT EXISTS {AUTH_TABLE} (
                    id SERIAL PRIMARY KEY,
                    key TEXT UNIQUE NOT NULL,
                    value TEXT
                )
            """)
        logger.info(f"Table '{AUTH_TABLE}' ready")

    def read(self, key: str) -> Optional[str]:
        with self._cursor() as cur:
            cur.execute(f"SELECT value FROM {AUTH_TABLE} WHERE key = %s", (key,))
            row = cur.fetchone()
        return row[0] if row else None

    def write(self, key: str, value: str) -> None:
        with self._cursor() as cur:
            cur.execute(
                f"""INSERT INTO {AUTH_TABLE} (key, value) VALUES (%s, %s)
                    ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value""",
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._cursor() as cur:
            cur.execute(f"DELETE FROM {AUTH_TABLE} WHERE key = %s", (key,))

    def keys(self) -> List[str]:
        with self._cursor() as cur:
            cur.execute(f"SELECT key FROM {AUTH_TABLE} ORDER BY key")
            rows = cur.fetchall()
        return [row[0] for row in rows]

    def items(self, prefix: str = "") -> Dict[str, str]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT key, value FROM {AUTH_TABLE} WHERE substr(key, 1, %s) = %s ORDER BY key",
                (len(prefix), prefix),
            )
            rows = cur.fetchall()
        return {key: value for key, value in rows if value is not None}

    def clear(self) -> None:
        with self._cursor() as cur:
            cur.execute(f"DELETE FROM {AUTH_TABLE}")
        logger.info("Cleared stored credentials")


class PostgresFileStore(_PostgresDatabase, FileStore):
    """Credential files in the ``auth_files`` table (BYTEA)."""

    def init(self) -> None:
        with self._cursor() as cur:
            cur.execute(f"""
                CREATE TABLE IF NOT EXISTS {FILES_TABLE} (
                    id SERIAL PRIMARY KEY,
                    filename TEXT UNIQUE NOT NULL,
                    content BYTEA
                )
            """)
        logger.info(f"Table '{FILES_TABLE}' ready")

    def read_file(self, filename: str) -> Optional[bytes]:
        with self._cursor() as cur:
            cur.execute(
                f"SELECT content FROM {FILES_TABLE} WHERE filename = %s", (filename,)
            )
            row = cur.fetchone()
        return bytes(row[0]) if row else None

    def write_file(self, filename: str, content: bytes) -> None:
        with self._cursor() as cur:
            cur.execute(
                f"""INSERT INTO {FILES_TABLE} (filename, content) VALUES (%s, %s)
                    ON CONFLICT (filename) DO UPDATE SET content = EXCLUDED.content""",
                (filename, psycopg2.Binary(content)),
            )

    def delete_file(self, filename: str) -> None:
        with self._cursor() as cur:
            cur.execute(f"DELETE FROM {FILES_TABLE} WHERE filename = %s", (filename,))

    def list_all(self) -> Dict[str, bytes]:
        with self._cursor() as cur:
            cur.execute(f"SELECT filename, content FROM {FILES_TABLE} ORDER BY filename")
            rows = cur.fetchall()
        return {name: bytes(content) for name, content in rows}

    def clear(self) -> None:
        with self._cursor() as cur:
            cur.execute(f"DELETE FROM {FILES_TABLE}")
        logger.info("Cleared stored credential files")
