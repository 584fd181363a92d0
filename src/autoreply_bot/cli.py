"""
Command-line entry point.

Usage:
    autoreply-bot run [--port 3000] [--bridge-url ws://...] [--storage postgres]
    autoreply-bot logout
    autoreply-bot show-config
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional, Tuple, Union

from .bot import AutoReplyBot
from .config import (
    AuthLayout,
    BotConfig,
    StorageBackend,
    get_config,
    get_config_manager,
)
from .exceptions import ConfigurationError, StoreError
from .logging import LogLevel, configure_logging
from .session import SessionManager
from .storage import (
    AuthStateStore,
    CredentialStore,
    FileStore,
    KeyValueAuthState,
    MirroredFileAuthState,
    PostgresCredentialStore,
    PostgresFileStore,
    SQLiteCredentialStore,
    SQLiteFileStore,
)
from .web import create_app, start_server

logger = logging.getLogger(__name__)

Store = Union[CredentialStore, FileStore]


def build_auth_state(config: BotConfig) -> Tuple[AuthStateStore, Store]:
    """
    Open the configured store and wrap it in the matching auth-state layer.

    Raises:
        StoreConnectionError: If the database cannot be reached
        ConfigurationError: If PostgreSQL settings are missing
    """
    multi_file = config.auth_layout == AuthLayout.MULTI_FILE

    if config.storage_backend == StorageBackend.SQLITE:
        store = SQLiteFileStore(config.sqlite_path) if multi_file else SQLiteCredentialStore(config.sqlite_path)
    else:
        params = config.postgres_params()
        store = PostgresFileStore(params) if multi_file else PostgresCredentialStore(params)
        store.connect()

    store.init()

    if multi_file:
        return MirroredFileAuthState(store, config.auth_dir), store
    return KeyValueAuthState(store), store


async def run_bot(config: BotConfig) -> None:
    """Run the bot and its HTTP endpoint until cancelled."""
    auth_state, store = build_auth_state(config)

    session = SessionManager(auth_state, config)
    AutoReplyBot(session, config=config)
    runner = await start_server(create_app(session, config), config.host, config.port)

    try:
        logger.info("🚀 Starting bot...")
        await session.start()
        await asyncio.Event().wait()
    finally:
        await session.stop()
        await runner.cleanup()
        store.close()


def logout(config: BotConfig) -> None:
    """Delete stored credentials so the next start pairs anew."""
    auth_state, store = build_auth_state(config)
    try:
        auth_state.clear()
    finally:
        store.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autoreply-bot",
        description="WhatsApp auto-reply bot with persistent sessions",
    )
    parser.add_argument("--config", help="JSON config file (env vars override it)")
    parser.add_argument("--port", type=int, help="HTTP port (default: $PORT or 3000)")
    parser.add_argument("--bridge-url", help="Messaging bridge websocket URL")
    parser.add_argument(
        "--storage",
        choices=[b.value for b in StorageBackend],
        help="Credential store backend",
    )
    parser.add_argument(
        "--layout",
        choices=[layout.value for layout in AuthLayout],
        help="Single credential blob or mirrored credential files",
    )
    parser.add_argument(
        "--log-level",
        choices=[level.value for level in LogLevel],
        help="Logging level",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="run",
        choices=["run", "logout", "show-config"],
    )
    return parser


def load_settings(args: argparse.Namespace) -> BotConfig:
    """Defaults, then config file, then environment, then flags."""
    manager = get_config_manager()
    if args.config:
        manager.load_config(args.config)
    manager.load_config_from_env()

    overrides = {
        "port": args.port,
        "bridge_url": args.bridge_url,
        "storage_backend": StorageBackend(args.storage) if args.storage else None,
        "auth_layout": AuthLayout(args.layout) if args.layout else None,
        "log_level": LogLevel(args.log_level) if args.log_level else None,
    }
    manager.update_config(**{k: v for k, v in overrides.items() if v is not None})
    return get_config()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_settings(args)
    except (OSError, ValueError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, config.log_file)

    if args.command == "show-config":
        data = config.to_dict()
        for secret in ("database_url", "pg_password"):
            if data.get(secret):
                data[secret] = "***"
        print(json.dumps(data, indent=2))
        return 0

    try:
        if args.command == "logout":
            logout(config)
            logger.info("Stored credentials removed")
        else:
            asyncio.run(run_bot(config))
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        return 2
    except StoreError as e:
        logger.error(f"❌ Credential store unavailable: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")

    return 0


if __name__ == "__main__":
    sys.exit(main())
