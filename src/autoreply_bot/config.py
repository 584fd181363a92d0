"""Configuration for the auto-reply bot."""

import json
import os
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .logging import LogLevel
from .exceptions import ConfigurationError


class StorageBackend(str, Enum):
    """Where credentials are persisted."""

    POSTGRES = "postgres"
    SQLITE = "sqlite"  # Local development


class AuthLayout(str, Enum):
    """How credentials are laid out in the store."""

    SINGLE = "single"  # One JSON blob under the "creds" key
    MULTI_FILE = "multi_file"  # Credential files mirrored to a local directory


_ENUM_FIELDS = {
    "storage_backend": StorageBackend,
    "auth_layout": AuthLayout,
    "log_level": LogLevel,
}

_TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class BotConfig:
    """Auto-reply bot configuration."""

    # HTTP keep-alive surface
    host: str = "0.0.0.0"
    port: int = 3000
    serve_qr: bool = True
    liveness_message: str = "🤖 Florenzano Bot está online!"

    # Messaging bridge
    bridge_url: str = "ws://localhost:8765"
    version_url: str = (
        "https://raw.githubusercontent.com/WhiskeySockets/Baileys/master/"
        "src/Defaults/baileys-version.json"
    )
    version_timeout_seconds: int = 10

    # Storage
    storage_backend: StorageBackend = StorageBackend.POSTGRES
    auth_layout: AuthLayout = AuthLayout.SINGLE
    database_url: Optional[str] = None
    pg_host: Optional[str] = None
    pg_user: Optional[str] = None
    pg_database: Optional[str] = None
    pg_password: Optional[str] = None
    pg_port: Optional[int] = None
    sqlite_path: str = "auth.db"
    auth_dir: str = "auth_info"

    # Reconnect policy
    reconnect_base_delay_seconds: float = 5.0
    reconnect_max_delay_seconds: float = 60.0
    reconnect_max_attempts: Optional[int] = None  # None retries forever
    startup_retry_delay_seconds: float = 10.0

    # Replies
    catalog_url: str = "https://loja.stoqui.com.br/florenzano-boutique"
    typing_delay_seconds: float = 1.5
    ignore_groups: bool = True

    # Logging
    log_level: LogLevel = LogLevel.INFO
    log_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready settings, enums as their values."""
        return {
            key: value.value if isinstance(value, Enum) else value
            for key, value in asdict(self).items()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BotConfig":
        """
        Build settings from ``to_dict`` output; missing keys keep defaults.

        Raises:
            ValueError: On unknown keys or invalid enum values
        """
        unknown = sorted(set(data) - {f.name for f in fields(cls)})
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")

        values = {
            key: _ENUM_FIELDS[key](value) if key in _ENUM_FIELDS else value
            for key, value in data.items()
        }
        return cls(**values)

    def postgres_params(self) -> Dict[str, Any]:
        """
        Connection parameters for the PostgreSQL store.

        DATABASE_URL wins over the discrete PG* settings. TLS is always
        requested without certificate validation (sslmode=require).

        Raises:
            ConfigurationError: If neither form is configured
        """
        if self.database_url:
            return {"dsn": self.database_url, "sslmode": "require"}

        if not self.pg_host:
            raise ConfigurationError(
                "PostgreSQL storage needs DATABASE_URL or PGHOST"
            )

        params: Dict[str, Any] = {
            "host": self.pg_host,
            "user": self.pg_user,
            "dbname": self.pg_database,
            "password": self.pg_password,
            "port": self.pg_port,
            "sslmode": "require",
        }
        return {k: v for k, v in params.items() if v is not None}


_FIELD_NAMES = frozenset(f.name for f in fields(BotConfig))


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _parse_log_level(value: str) -> LogLevel:
    return LogLevel(value.strip().upper())


# Environment variable -> (BotConfig field, parser)
ENV_VARS: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "PORT": ("port", int),
    "DATABASE_URL": ("database_url", str),
    "PGHOST": ("pg_host", str),
    "PGUSER": ("pg_user", str),
    "PGDATABASE": ("pg_database", str),
    "PGPASSWORD": ("pg_password", str),
    "PGPORT": ("pg_port", int),
    "BOT_STORAGE_BACKEND": ("storage_backend", StorageBackend),
    "BOT_AUTH_LAYOUT": ("auth_layout", AuthLayout),
    "BOT_SQLITE_PATH": ("sqlite_path", str),
    "BOT_AUTH_DIR": ("auth_dir", str),
    "BOT_BRIDGE_URL": ("bridge_url", str),
    "BOT_VERSION_URL": ("version_url", str),
    "BOT_CATALOG_URL": ("catalog_url", str),
    "BOT_TYPING_DELAY": ("typing_delay_seconds", float),
    "BOT_SERVE_QR": ("serve_qr", _parse_bool),
    "BOT_IGNORE_GROUPS": ("ignore_groups", _parse_bool),
    "BOT_LOG_LEVEL": ("log_level", _parse_log_level),
    "BOT_LOG_FILE": ("log_file", str),
}


class ConfigManager:
    """
    Process-wide bot settings.

    Layers apply in order, later ones winning: defaults, a JSON file
    (``load_config``), the environment (``load_config_from_env``) and
    explicit overrides (``update_config``).
    """

    _instance: Optional["ConfigManager"] = None
    _config: BotConfig

    def __new__(cls) -> "ConfigManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True
        self._config = BotConfig()
        self._source: Optional[Path] = None

    def load_config(self, config_file: str) -> None:
        """
        Replace the settings with those of a JSON file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If it is not valid JSON or has unknown keys
        """
        path = Path(config_file).expanduser()
        if not path.is_file():
            raise FileNotFoundError(f"Config file not found: {config_file}")

        self._config = BotConfig.from_dict(json.loads(path.read_text()))
        self._source = path

    def save_config(self, config_file: Optional[str] = None) -> None:
        """Write the settings as JSON, by default to the file they came from."""
        path = Path(config_file).expanduser() if config_file else self._source
        if path is None:
            raise ValueError("No config file path specified")

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self._config.to_dict(), indent=2))
        self._source = path

    def load_config_from_env(self, environ: Optional[Mapping[str, str]] = None) -> None:
        """
        Apply every variable of ``ENV_VARS`` that is set.

        Raises:
            ValueError: If a value does not parse
        """
        env = os.environ if environ is None else environ
        for name, (key, parse) in ENV_VARS.items():
            if name in env:
                setattr(self._config, key, parse(env[name]))

    def get_config(self) -> BotConfig:
        return self._config

    def update_config(self, **kwargs: Any) -> None:
        """
        Set several values at once. Enum fields also accept their string value.

        Raises:
            ValueError: On an unknown key; nothing is changed
        """
        unknown = sorted(set(kwargs) - _FIELD_NAMES)
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {', '.join(unknown)}")

        for key, value in kwargs.items():
            enum_cls = _ENUM_FIELDS.get(key)
            if enum_cls is not None and value is not None:
                value = enum_cls(value)
            setattr(self._config, key, value)

    def get_value(self, key: str) -> Any:
        if key not in _FIELD_NAMES:
            raise KeyError(f"Unknown configuration key: {key}")
        return getattr(self._config, key)

    def set_value(self, key: str, value: Any) -> None:
        if key not in _FIELD_NAMES:
            raise KeyError(f"Unknown configuration key: {key}")
        self.update_config(**{key: value})

    def reset_to_defaults(self) -> None:
        self._config = BotConfig()
        self._source = None


_config_manager = ConfigManager()


def get_config_manager() -> ConfigManager:
    return _config_manager


def get_config() -> BotConfig:
    """Current settings of the global config manager."""
    return _config_manager.get_config()


def update_config(**kwargs: Any) -> None:
    _config_manager.update_config(**kwargs)
