"""Session auth state persisted through a credential store."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..exceptions import StoreError
from ..models import AuthState
from .base import CredentialStore

logger = logging.getLogger(__name__)

CREDS_KEY = "creds"
KEY_PREFIX = "keys"

# Signal key categories the protocol client stores, longest first so that
# prefix matching picks "sender-key-memory" over "sender-key".
KEY_CATEGORIES = tuple(
    sorted(
        (
            "pre-key",
            "session",
            "sender-key",
            "sender-key-memory",
            "app-state-sync-key",
            "app-state-sync-version",
            "lid-mapping",
            "device-list",
            "tctoken",
        ),
        key=len,
        reverse=True,
    )
)

KeyUpdates = Dict[str, Dict[str, Optional[Any]]]


class AuthStateStore(ABC):
    """Load and persist the bridge's auth state."""

    @abstractmethod
    def load(self) -> AuthState:
        """
        Load stored credentials and keys.

        Returns an empty AuthState when nothing is stored.

        Raises:
            StoreError: If the store cannot be read
        """
        ...

    @abstractmethod
    def save_creds(self, creds: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def save_keys(self, updates: KeyUpdates) -> None:
        """Apply ``{category: {id: value}}``; a None value deletes the key."""
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


def decode_record(raw, name: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError as e:
        raise StoreError(f"Corrupt credential record '{name}': {e}") from e


def build_auth_state(creds: Any, keys: Dict[str, Dict[str, Any]]) -> AuthState:
    """
    Validate decoded records into an AuthState.

    Raises:
        StoreError: If the stored records have the wrong shape
    """
    try:
        return AuthState(creds=creds, keys=keys)
    except ValidationError as e:
        raise StoreError(f"Stored credentials have an unexpected shape: {e}") from e


class KeyValueAuthState(AuthStateStore):
    """
    Auth state in a key/value store.

    Creds live under ``creds``; each signal key under
    ``keys:<category>:<id>``.
    """

    def __init__(self, store: CredentialStore):
        self.store = store

    @staticmethod
    def key_name(category: str, key_id: str) -> str:
        return f"{KEY_PREFIX}:{category}:{key_id}"

    def load(self) -> AuthState:
        raw = self.store.read(CREDS_KEY)
        if raw is None:
            logger.info("No stored credentials, a new pairing is required")
            return AuthState()

        keys: Dict[str, Dict[str, Any]] = {}
        for name, value in self.store.items(f"{KEY_PREFIX}:").items():
            parts = name.split(":", 2)
            if len(parts) != 3:
                raise StoreError(f"Malformed key record name '{name}'")
            _, category, key_id = parts
            keys.setdefault(category, {})[key_id] = decode_record(value, name)

        logger.info(f"Loaded stored credentials ({sum(len(v) for v in keys.values())} keys)")
        return build_auth_state(decode_record(raw, CREDS_KEY), keys)

    def save_creds(self, creds: Dict[str, Any]) -> None:
        self.store.write(CREDS_KEY, json.dumps(creds))
        logger.debug("Credentials saved")

    def save_keys(self, updates: KeyUpdates) -> None:
        for category, entries in updates.items():
            for key_id, value in entries.items():
                name = self.key_name(category, key_id)
                if value is None:
                    self.store.delete(name)
                else:
                    self.store.write(name, json.dumps(value))

    def clear(self) -> None:
        self.store.clear()
