"""WebSocket connection to the WhatsApp protocol bridge."""

import asyncio
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence
from enum import Enum

import websockets

from ..exceptions import GatewayError
from ..models import AuthState, DisconnectReason

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], Awaitable[None]]

CONNECTION_UPDATE = "connection.update"
MESSAGES_UPSERT = "messages.upsert"
CREDS_UPDATE = "creds.update"
KEYS_SET = "keys.set"


class ConnectionState(Enum):
    """Bridge socket states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class BridgeConnection:
    """
    One live link to the messaging network, through the bridge process.

    The bridge hosts the protocol client. Requests go out as
    ``{"action": ..., ...}`` frames; client events come back as
    ``{"event": ..., "data": ...}`` and are routed to handlers registered
    with ``on``. A handle never reconnects itself: when its socket drops it
    reports a ``connection.update`` close and the owner builds a new handle.
    """

    def __init__(self, bridge_url: str, ping_interval: int = 30, ping_timeout: int = 10):
        """
        Initialize the bridge connection.

        Args:
            bridge_url: Bridge websocket URL (ws/wss)
            ping_interval: Keep-alive ping interval in seconds
            ping_timeout: Seconds to wait for a pong
        """
        self.bridge_url = bridge_url
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout

        self._state = ConnectionState.DISCONNECTED
        self._ws = None
        self._receive_task: Optional[asyncio.Task] = None
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)

        self._closed = False
        self._close_reported = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._ws is not None

    def on(self, event: str, handler: EventHandler) -> EventHandler:
        """
        Register a handler for a client event.

        Example:
            conn.on("messages.upsert", handle_upsert)
        """
        self._handlers[event].append(handler)
        return handler

    async def connect(self, auth: AuthState, version: Sequence[int]) -> None:
        """
        Open the socket and ask the bridge to start a session.

        Args:
            auth: Stored credentials and keys (empty to pair anew)
            version: WhatsApp Web protocol version

        Raises:
            GatewayError: If the bridge cannot be reached
        """
        if self._closed:
            raise GatewayError("Bridge connection is closed")

        self._state = ConnectionState.CONNECTING
        logger.info(f"Connecting to bridge: {self.bridge_url}")

        try:
            self._ws = await websockets.connect(
                self.bridge_url,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                max_size=None,
            )
        except (OSError, websockets.exceptions.WebSocketException) as e:
            self._state = ConnectionState.DISCONNECTED
            raise GatewayError(f"Bridge connection failed: {e}") from e

        self._state = ConnectionState.CONNECTED
        self._receive_task = asyncio.create_task(self._receive_loop())

        await self._send({
            "action": "connect",
            "auth": auth.model_dump(),
            "version": list(version),
        })

    async def send_message(self, jid: str, content: Dict[str, Any]) -> None:
        """
        Send a message through the protocol client.

        Args:
            jid: Recipient JID
            content: Message content, e.g. ``{"text": "..."}``
        """
        await self._send({"action": "sendMessage", "jid": jid, "content": content})

    async def send_presence(self, presence: str, jid: Optional[str] = None) -> None:
        """Send a presence update (composing, available, paused, ...)."""
        await self._send({"action": "sendPresenceUpdate", "type": presence, "jid": jid})

    async def presence_subscribe(self, jid: str) -> None:
        await self._send({"action": "presenceSubscribe", "jid": jid})

    async def logout(self) -> None:
        """Ask the protocol client to unlink this device."""
        await self._send({"action": "logout"})

    async def close(self) -> None:
        """Close the handle permanently."""
        if self._closed:
            return
        self._closed = True
        self._state = ConnectionState.CLOSED

        task = self._receive_task
        self._receive_task = None
        if task and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if self._ws:
            ws, self._ws = self._ws, None
            await ws.close()

        logger.debug("Bridge connection closed")

    async def _send(self, message: Dict[str, Any]) -> None:
        if not self.is_connected:
            raise GatewayError("Not connected to the bridge")

        try:
            await self._ws.send(json.dumps(message))
            logger.debug(f"Sent bridge request: {message.get('action')}")
        except websockets.exceptions.WebSocketException as e:
            logger.error(f"Failed to send bridge request: {e}")
            raise GatewayError(f"Failed to send {message.get('action')}: {e}") from e

    async def _receive_loop(self) -> None:
        """Receive bridge frames and route them in arrival order."""
        try:
            async for frame in self._ws:
                try:
                    data = json.loads(frame)
                except json.JSONDecodeError as e:
                    logger.error(f"Invalid JSON from bridge: {e}")
                    continue
                await self._route_event(data)
        except websockets.exceptions.ConnectionClosed:
            logger.warning("Bridge connection closed")
        except asyncio.CancelledError:
            logger.debug("Receive loop cancelled")
            raise
        finally:
            if not self._closed:
                self._state = ConnectionState.DISCONNECTED
                if not self._close_reported:
                    await self._route_event({
                        "event": CONNECTION_UPDATE,
                        "data": {
                            "connection": "close",
                            "lastDisconnect": {
                                "statusCode": int(DisconnectReason.CONNECTION_LOST),
                                "message": "Bridge socket closed",
                            },
                        },
                    })

    async def _route_event(self, frame: Dict[str, Any]) -> None:
        event = frame.get("event")
        data = frame.get("data")

        if event == CONNECTION_UPDATE and (data or {}).get("connection") == "close":
            self._close_reported = True

        handlers = self._handlers.get(event)
        if not handlers:
            logger.debug(f"Unhandled bridge event: {event}")
            return

        for handler in handlers:
            try:
                await handler(data)
            except Exception as e:
                logger.error(f"Handler error for {event}: {e}", exc_info=True)
