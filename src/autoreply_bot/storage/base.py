"""Storage contracts for session credentials."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

AUTH_TABLE = "auth"
FILES_TABLE = "auth_files"


class CredentialStore(ABC):
    """
    Key/value store for serialized credentials.

    ``read`` returns None only when the key is absent. Failures raise
    StoreError so callers never mistake an outage for "no prior session".
    ``write`` is an upsert: after any number of writes to one key exactly
    one record exists, holding the last value written.
    """

    @abstractmethod
    def init(self) -> None:
        """Create the backing table if needed."""
        ...

    @abstractmethod
    def read(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> List[str]:
        ...

    def items(self, prefix: str = "") -> Dict[str, str]:
        """Records whose key starts with ``prefix``; backends override this with one query."""
        found = {}
        for key in self.keys():
            if key.startswith(prefix):
                value = self.read(key)
                if value is not None:
                    found[key] = value
        return found

    @abstractmethod
    def clear(self) -> None:
        """Remove every record (explicit logout)."""
        ...

    def close(self) -> None:
        """Release connections held by the store."""
        pass


class FileStore(ABC):
    """
    Filename to binary blob store, used to mirror a credential directory.

    Same contract as CredentialStore: absent is None, failures raise,
    writes are upserts keyed by filename.
    """

    @abstractmethod
    def init(self) -> None:
        ...

    @abstractmethod
    def read_file(self, filename: str) -> Optional[bytes]:
        ...

    @abstractmethod
    def write_file(self, filename: str, content: bytes) -> None:
        ...

    @abstractmethod
    def delete_file(self, filename: str) -> None:
        ...

    @abstractmethod
    def list_all(self) -> Dict[str, bytes]:
        """Every stored file, keyed by filename."""
        ...

    @abstractmethod
    def clear(self) -> None:
        ...

    def close(self) -> None:
        pass
