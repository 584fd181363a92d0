"""Shared fixtures: an in-memory bridge handle and a SQLite-backed session."""

from collections import defaultdict
from unittest.mock import AsyncMock, MagicMock

import pytest

from autoreply_bot.config import ENV_VARS, BotConfig, get_config_manager
from autoreply_bot.exceptions import GatewayError
from autoreply_bot.session import SessionManager
from autoreply_bot.storage import KeyValueAuthState, SQLiteCredentialStore
from autoreply_bot.transport.websocket import CONNECTION_UPDATE, MESSAGES_UPSERT

OWN_JID = "5511900000000:3@s.whatsapp.net"
CUSTOMER_JID = "5511988887777@s.whatsapp.net"


class FakeConnection:
    """Records requests and lets tests emit bridge events."""

    def __init__(self, fail_connect: bool = False):
        self.handlers = defaultdict(list)
        self.fail_connect = fail_connect
        self.connected_with = None
        self.is_connected = False
        self.closed = False
        self.sent = []

    def on(self, event, handler):
        self.handlers[event].append(handler)
        return handler

    async def connect(self, auth, version):
        if self.fail_connect:
            raise GatewayError("Bridge connection failed: refused")
        self.connected_with = (auth, version)
        self.is_connected = True

    async def emit(self, event, data):
        for handler in self.handlers[event]:
            await handler(data)

    async def open(self):
        await self.emit(CONNECTION_UPDATE, {"connection": "open"})

    async def close_with(self, status_code):
        await self.emit(
            CONNECTION_UPDATE,
            {"connection": "close", "lastDisconnect": {"statusCode": status_code}},
        )

    async def deliver(self, *messages):
        await self.emit(MESSAGES_UPSERT, {"type": "notify", "messages": list(messages)})

    async def send_message(self, jid, content):
        self.sent.append(("message", jid, content))

    async def send_presence(self, presence, jid=None):
        self.sent.append(("presence", jid, presence))

    async def presence_subscribe(self, jid):
        self.sent.append(("subscribe", jid, None))

    async def logout(self):
        self.sent.append(("logout", None, None))

    async def close(self):
        self.closed = True
        self.is_connected = False


def text_message(text, jid=CUSTOMER_JID, msg_id="MSG1", from_me=False):
    return {
        "key": {"remoteJid": jid, "fromMe": from_me, "id": msg_id},
        "message": {"conversation": text},
        "pushName": "Cliente",
    }


@pytest.fixture(autouse=True)
def reset_config():
    get_config_manager().reset_to_defaults()
    yield
    get_config_manager().reset_to_defaults()


@pytest.fixture
def config(tmp_path):
    return BotConfig(
        reconnect_base_delay_seconds=0.01,
        reconnect_max_delay_seconds=0.05,
        startup_retry_delay_seconds=0.0,
        typing_delay_seconds=0,
        sqlite_path=str(tmp_path / "auth.db"),
    )


@pytest.fixture
def auth_state(config):
    store = SQLiteCredentialStore(config.sqlite_path)
    store.init()
    return KeyValueAuthState(store)


@pytest.fixture
def version_client():
    client = MagicMock()
    client.fetch_latest = AsyncMock(return_value=((2, 3000, 1), True))
    return client


@pytest.fixture
def connections():
    return []


@pytest.fixture
def session(auth_state, config, version_client, connections):
    def factory(cfg):
        conn = FakeConnection()
        connections.append(conn)
        return conn

    return SessionManager(
        auth_state, config, connection_factory=factory, version_client=version_client
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Environment without any bot settings."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
