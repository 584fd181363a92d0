"""Tests for the bridge websocket and the version lookup."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from autoreply_bot.exceptions import GatewayError
from autoreply_bot.models import AuthState
from autoreply_bot.transport import DEFAULT_VERSION, BridgeConnection, ConnectionState, VersionClient
from autoreply_bot.transport.websocket import CONNECTION_UPDATE, CREDS_UPDATE, MESSAGES_UPSERT


class FakeSocket:
    """Websocket stand-in yielding queued frames, then ending."""

    def __init__(self, frames=()):
        self.frames = list(frames)
        self.sent = []
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for frame in self.frames:
            yield frame if isinstance(frame, str) else json.dumps(frame)


def _patch_connect(socket):
    return patch(
        "autoreply_bot.transport.websocket.websockets.connect",
        new=AsyncMock(return_value=socket),
    )


class TestBridgeConnection:
    """Test BridgeConnection requests and event routing."""

    @pytest.mark.asyncio
    async def test_connect_sends_auth_and_version(self):
        socket = FakeSocket()
        conn = BridgeConnection("ws://bridge")
        auth = AuthState(creds={"me": {"id": "5511@s.whatsapp.net"}})

        with _patch_connect(socket):
            await conn.connect(auth, (2, 3000, 1))

        assert socket.sent[0] == {
            "action": "connect",
            "auth": {"creds": {"me": {"id": "5511@s.whatsapp.net"}}, "keys": {}},
            "version": [2, 3000, 1],
        }
        await conn.close()

    @pytest.mark.asyncio
    async def test_connect_failure_raises_gateway_error(self):
        conn = BridgeConnection("ws://bridge")
        with patch(
            "autoreply_bot.transport.websocket.websockets.connect",
            new=AsyncMock(side_effect=OSError("connection refused")),
        ):
            with pytest.raises(GatewayError):
                await conn.connect(AuthState(), DEFAULT_VERSION)

        assert conn.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_send_requires_connection(self):
        conn = BridgeConnection("ws://bridge")
        with pytest.raises(GatewayError):
            await conn.send_message("5511@s.whatsapp.net", {"text": "hi"})

    @pytest.mark.asyncio
    async def test_requests(self):
        conn = BridgeConnection("ws://bridge")
        conn._ws = FakeSocket()
        conn._state = ConnectionState.CONNECTED

        await conn.send_message("5511@s.whatsapp.net", {"text": "hi"})
        await conn.presence_subscribe("5511@s.whatsapp.net")
        await conn.send_presence("composing", "5511@s.whatsapp.net")
        await conn.logout()

        assert conn._ws.sent == [
            {"action": "sendMessage", "jid": "5511@s.whatsapp.net", "content": {"text": "hi"}},
            {"action": "presenceSubscribe", "jid": "5511@s.whatsapp.net"},
            {"action": "sendPresenceUpdate", "type": "composing", "jid": "5511@s.whatsapp.net"},
            {"action": "logout"},
        ]

    @pytest.mark.asyncio
    async def test_events_routed_in_order(self):
        """Frames reach handlers in arrival order; bad JSON is skipped."""
        socket = FakeSocket([
            {"event": CREDS_UPDATE, "data": {"me": {"id": "1"}}},
            "{not json",
            {"event": MESSAGES_UPSERT, "data": {"messages": []}},
            {"event": "unknown.event", "data": {}},
            {"event": CONNECTION_UPDATE, "data": {"connection": "close", "lastDisconnect": {"statusCode": 515}}},
        ])
        conn = BridgeConnection("ws://bridge")
        seen = []

        def record(name):
            async def handler(data):
                seen.append((name, data))
            return handler

        conn.on(CREDS_UPDATE, record("creds"))
        conn.on(MESSAGES_UPSERT, record("messages"))
        conn.on(CONNECTION_UPDATE, record("connection"))

        with _patch_connect(socket):
            await conn.connect(AuthState(), DEFAULT_VERSION)
            await asyncio.sleep(0.05)

        assert [name for name, _ in seen] == ["creds", "messages", "connection"]
        assert seen[2][1]["lastDisconnect"]["statusCode"] == 515
        await conn.close()

    @pytest.mark.asyncio
    async def test_socket_drop_reports_synthetic_close(self):
        """A dropped socket surfaces as a connection.update close."""
        conn = BridgeConnection("ws://bridge")
        updates = []

        async def on_update(data):
            updates.append(data)

        conn.on(CONNECTION_UPDATE, on_update)

        with _patch_connect(FakeSocket([{"event": CONNECTION_UPDATE, "data": {"connection": "open"}}])):
            await conn.connect(AuthState(), DEFAULT_VERSION)
            await asyncio.sleep(0.05)

        assert updates[0] == {"connection": "open"}
        assert updates[1]["connection"] == "close"
        assert updates[1]["lastDisconnect"]["statusCode"] == 408
        assert conn.state == ConnectionState.DISCONNECTED
        await conn.close()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_routing(self):
        conn = BridgeConnection("ws://bridge")
        calls = []

        async def broken(data):
            raise RuntimeError("boom")

        async def working(data):
            calls.append(data)

        conn.on(CREDS_UPDATE, broken)
        conn.on(CREDS_UPDATE, working)

        await conn._route_event({"event": CREDS_UPDATE, "data": {"a": 1}})

        assert calls == [{"a": 1}]

    @pytest.mark.asyncio
    async def test_close_is_final(self):
        socket = FakeSocket()
        conn = BridgeConnection("ws://bridge")

        with _patch_connect(socket):
            await conn.connect(AuthState(), DEFAULT_VERSION)
        await conn.close()

        assert socket.closed
        assert conn.state == ConnectionState.CLOSED
        assert not conn.is_connected
        with pytest.raises(GatewayError):
            await conn.connect(AuthState(), DEFAULT_VERSION)


def _mock_session(payload=None, error=None):
    response = MagicMock()
    response.raise_for_status = MagicMock(side_effect=error)
    response.json = AsyncMock(return_value=payload)

    request = MagicMock()
    request.__aenter__ = AsyncMock(return_value=response)
    request.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.get = MagicMock(return_value=request)
    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=False)
    return session


class TestVersionClient:
    """Test the protocol version lookup."""

    @pytest.mark.asyncio
    async def test_fetches_latest(self):
        session = _mock_session({"version": [2, 3000, 1027934701]})
        with patch("autoreply_bot.transport.rest.aiohttp.ClientSession", return_value=session):
            version, is_latest = await VersionClient("https://example.com/v.json").fetch_latest()

        assert version == (2, 3000, 1027934701)
        assert is_latest

    @pytest.mark.asyncio
    async def test_http_error_falls_back(self):
        session = _mock_session(error=aiohttp.ClientError("503"))
        with patch("autoreply_bot.transport.rest.aiohttp.ClientSession", return_value=session):
            version, is_latest = await VersionClient("https://example.com/v.json").fetch_latest()

        assert version == DEFAULT_VERSION
        assert not is_latest

    @pytest.mark.asyncio
    async def test_bad_document_falls_back(self):
        session = _mock_session({"unexpected": True})
        with patch("autoreply_bot.transport.rest.aiohttp.ClientSession", return_value=session):
            version, is_latest = await VersionClient("https://example.com/v.json").fetch_latest()

        assert version == DEFAULT_VERSION
        assert not is_latest
