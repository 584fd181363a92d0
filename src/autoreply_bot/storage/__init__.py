"""Storage modules."""

from .base import CredentialStore, FileStore
from .sqlite import SQLiteCredentialStore, SQLiteFileStore
from .postgres import PostgresCredentialStore, PostgresFileStore
from .auth_state import AuthStateStore, KeyValueAuthState
from .mirror import CREDS_FILE, MirroredFileAuthState, key_filename, parse_key_filename

__all__ = [
    "CredentialStore",
    "FileStore",
    "SQLiteCredentialStore",
    "SQLiteFileStore",
    "PostgresCredentialStore",
    "PostgresFileStore",
    "AuthStateStore",
    "KeyValueAuthState",
    "MirroredFileAuthState",
    "CREDS_FILE",
    "key_filename",
    "parse_key_filename",
]
