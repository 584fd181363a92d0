"""Tests for the command-line entry point."""

import json

import pytest

from autoreply_bot.cli import build_auth_state, build_parser, main
from autoreply_bot.config import AuthLayout, BotConfig, StorageBackend
from autoreply_bot.exceptions import ConfigurationError
from autoreply_bot.storage import (
    KeyValueAuthState,
    MirroredFileAuthState,
    SQLiteCredentialStore,
    SQLiteFileStore,
)


class TestBuildAuthState:
    """Test store and layout selection."""

    def test_sqlite_single(self, tmp_path):
        config = BotConfig(storage_backend=StorageBackend.SQLITE, sqlite_path=str(tmp_path / "a.db"))
        auth_state, store = build_auth_state(config)

        assert isinstance(auth_state, KeyValueAuthState)
        assert isinstance(store, SQLiteCredentialStore)
        assert auth_state.load().creds is None

    def test_sqlite_multi_file(self, tmp_path):
        config = BotConfig(
            storage_backend=StorageBackend.SQLITE,
            auth_layout=AuthLayout.MULTI_FILE,
            sqlite_path=str(tmp_path / "a.db"),
            auth_dir=str(tmp_path / "auth_info"),
        )
        auth_state, store = build_auth_state(config)

        assert isinstance(auth_state, MirroredFileAuthState)
        assert isinstance(store, SQLiteFileStore)

    def test_postgres_without_settings(self):
        with pytest.raises(ConfigurationError):
            build_auth_state(BotConfig())


def test_parser_defaults_to_run():
    args = build_parser().parse_args([])
    assert args.command == "run"
    assert args.port is None


def test_show_config_masks_secrets(clean_env, capsys):
    clean_env.setenv("DATABASE_URL", "postgres://bot:secret@db/bot")

    assert main(["--port", "8080", "show-config"]) == 0

    data = json.loads(capsys.readouterr().out)
    assert data["port"] == 8080
    assert data["database_url"] == "***"


def test_invalid_env_exits_2(clean_env):
    clean_env.setenv("BOT_STORAGE_BACKEND", "mongodb")
    assert main(["show-config"]) == 2


def test_logout_without_database_exits_2(clean_env):
    assert main(["logout"]) == 2


def test_logout_clears_sqlite_store(clean_env, tmp_path):
    db = str(tmp_path / "auth.db")
    store = SQLiteCredentialStore(db)
    store.init()
    store.write("creds", "{}")

    clean_env.setenv("BOT_SQLITE_PATH", db)
    assert main(["--storage", "sqlite", "logout"]) == 0

    assert store.read("creds") is None
