"""
Credential directory mirrored into a file store.

The database is the source of truth. The local directory is a disposable
cache: ``rebuild_cache`` invalidates it and re-materializes every file from
the store, and every update writes the store before the cache.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ..exceptions import StoreError
from ..models import AuthState
from .auth_state import (
    KEY_CATEGORIES,
    AuthStateStore,
    KeyUpdates,
    build_auth_state,
    decode_record,
)
from .base import FileStore

logger = logging.getLogger(__name__)

CREDS_FILE = "creds.json"


def key_filename(category: str, key_id: str) -> str:
    """File name for a signal key, matching the protocol client's folder layout."""
    return f"{category}-{key_id}.json".replace("/", "__")


def parse_key_filename(filename: str) -> Optional[Tuple[str, str]]:
    """Inverse of ``key_filename``; None for names that are not key files."""
    if not filename.endswith(".json") or filename == CREDS_FILE:
        return None
    stem = filename[: -len(".json")].replace("__", "/")
    for category in KEY_CATEGORIES:
        if stem.startswith(f"{category}-"):
            return category, stem[len(category) + 1:]
    category, sep, key_id = stem.rpartition("-")
    return (category, key_id) if sep and category else None


class MirroredFileAuthState(AuthStateStore):
    """
    Multi-file auth state backed by a FileStore with a local directory cache.

    Usage:
        auth = MirroredFileAuthState(PostgresFileStore(params), "auth_info")
        state = auth.load()  # rebuilds ./auth_info from the database
    """

    def __init__(self, file_store: FileStore, directory: str):
        self.file_store = file_store
        self.directory = Path(directory).expanduser()

    def invalidate_cache(self) -> None:
        """
        Remove every cached file; the directory itself is kept.

        Raises:
            StoreError: If the directory cannot be created or emptied
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            for path in self.directory.iterdir():
                if path.is_file():
                    path.unlink()
        except OSError as e:
            raise StoreError(f"Cannot reset credential cache {self.directory}: {e}") from e

    def rebuild_cache(self) -> Dict[str, bytes]:
        """
        Re-synthesize the directory from the store.

        Returns:
            The stored files, keyed by filename
        """
        files = self.file_store.list_all()
        self.invalidate_cache()
        try:
            for name, content in files.items():
                (self.directory / name).write_bytes(content)
        except OSError as e:
            raise StoreError(f"Cannot write credential cache {self.directory}: {e}") from e
        logger.info(f"Rebuilt credential cache {self.directory} ({len(files)} files)")
        return files

    def _write_cache(self, filename: str, content: Optional[bytes]) -> None:
        path = self.directory / filename
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            if content is None:
                path.unlink(missing_ok=True)
            else:
                path.write_bytes(content)
        except OSError as e:
            # The store already holds the update; the cache is rebuilt on start.
            logger.warning(f"Could not update cached {path}: {e}")

    def load(self) -> AuthState:
        files = self.rebuild_cache()

        creds = files.get(CREDS_FILE)
        if creds is None:
            logger.info("No stored credential files, a new pairing is required")
            return AuthState()

        keys: Dict[str, Dict[str, Any]] = {}
        for name, content in files.items():
            parsed = parse_key_filename(name)
            if parsed is None:
                continue
            category, key_id = parsed
            keys.setdefault(category, {})[key_id] = decode_record(content, name)

        return build_auth_state(decode_record(creds, CREDS_FILE), keys)

    def save_creds(self, creds: Dict[str, Any]) -> None:
        content = json.dumps(creds).encode()
        self.file_store.write_file(CREDS_FILE, content)
        self._write_cache(CREDS_FILE, content)

    def save_keys(self, updates: KeyUpdates) -> None:
        for category, entries in updates.items():
            for key_id, value in entries.items():
                filename = key_filename(category, key_id)
                if value is None:
                    self.file_store.delete_file(filename)
                    self._write_cache(filename, None)
                else:
                    content = json.dumps(value).encode()
                    self.file_store.write_file(filename, content)
                    self._write_cache(filename, content)

    def clear(self) -> None:
        self.file_store.clear()
        self.invalidate_cache()
        logger.info("Cleared credential files and cache")
