"""Session lifecycle: connection handle, pairing token and reconnect policy."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from .async_utils import HandlerTasks
from .config import BotConfig, get_config
from .exceptions import GatewayError, PairingError, StoreError
from .logging import handle_exception
from .models import ConnectionUpdate, InboundMessage, SessionState, jid_user
from .qr import render_terminal
from .storage.auth_state import AuthStateStore
from .transport.rest import VersionClient
from .transport.websocket import (
    CONNECTION_UPDATE,
    CREDS_UPDATE,
    KEYS_SET,
    MESSAGES_UPSERT,
    BridgeConnection,
)

logger = logging.getLogger(__name__)

MessageHandler = Callable[[InboundMessage], Awaitable[None]]
ConnectionFactory = Callable[[BotConfig], BridgeConnection]


def _default_connection_factory(config: BotConfig) -> BridgeConnection:
    return BridgeConnection(config.bridge_url)


class SessionManager:
    """
    Owns the live connection handle and the pending pairing token.

    States: UNINITIALIZED -> CONNECTING -> PAIRING_REQUIRED | OPEN -> CLOSED
    -> CONNECTING (automatic retry) or LOGGED_OUT (terminal).

    Retries use capped exponential backoff. At most one retry is pending at
    a time; close events arriving while one is pending schedule nothing.
    A logout never schedules a retry and clears the stored credentials.
    Each reconnect builds a new handle; the previous one is closed and its
    late events are ignored.

    Example:
        >>> session = SessionManager(KeyValueAuthState(store), config)
        >>> @session.on_message
        ... async def reply(message):
        ...     await session.send_text(message.sender, "hi")
        >>> await session.start()
    """

    def __init__(
        self,
        auth_state: AuthStateStore,
        config: Optional[BotConfig] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        version_client: Optional[VersionClient] = None,
    ) -> None:
        self._auth_state = auth_state
        self._config = config or get_config()
        self._connection_factory = connection_factory or _default_connection_factory
        self._version_client = version_client or VersionClient(
            self._config.version_url, self._config.version_timeout_seconds
        )

        self._state = SessionState.UNINITIALIZED
        self._handle: Optional[BridgeConnection] = None
        self._qr: Optional[str] = None
        self._own_jid: Optional[str] = None

        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_attempt = 0
        self._stopped = False
        self._generation = 0

        self._message_handlers: List[MessageHandler] = []
        self._handler_tasks = HandlerTasks()

    # ── State ──────────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == SessionState.OPEN

    @property
    def current_qr(self) -> Optional[str]:
        """Pending pairing token; None once the connection opens or closes."""
        return self._qr

    @property
    def own_jid(self) -> Optional[str]:
        return self._own_jid

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    @property
    def reconnect_attempt(self) -> int:
        return self._reconnect_attempt

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            logger.debug(f"Session state: {self._state.value} -> {state.value}")
            self._state = state

    def on_message(self, handler: MessageHandler) -> MessageHandler:
        """Register a handler for inbound messages (usable as a decorator)."""
        self._message_handlers.append(handler)
        return handler

    # ── Lifecycle ──────────────────────────────────────────────────

    async def start(self) -> None:
        """
        Load stored credentials and open a new connection.

        Failures never propagate: a store outage, unreadable credentials or
        an unreachable bridge leave the session CLOSED with a retry
        scheduled. A logout, a stop or a newer start while this one is
        suspended abandons it.
        """
        if self._stopped:
            raise GatewayError("Session manager is stopped")

        self._generation += 1
        generation = self._generation
        self._set_state(SessionState.CONNECTING)

        await self._discard_handle()
        if self._superseded(generation):
            return

        try:
            auth = self._auth_state.load()
        except Exception as e:
            # An unreadable store is not "no prior session": pairing anew
            # here would orphan the stored credentials.
            handle_exception(e, "session.load_auth_state")
            self._set_state(SessionState.CLOSED)
            self._schedule_reconnect(min_delay=self._config.startup_retry_delay_seconds)
            return

        self._own_jid = auth.own_jid

        handle: Optional[BridgeConnection] = None
        try:
            version, is_latest = await self._version_client.fetch_latest()
            if self._superseded(generation):
                return
            logger.info(
                f"Using WhatsApp version v{'.'.join(map(str, version))} (latest: {is_latest})"
            )

            handle = self._connection_factory(self._config)
            self._bind(handle)
            self._handle = handle
            await handle.connect(auth, version)
        except Exception as e:
            if self._superseded(generation):
                return
            handle_exception(e, "session.start")
            self._set_state(SessionState.CLOSED)
            self._schedule_reconnect(min_delay=self._config.startup_retry_delay_seconds)
            return

        if self._superseded(generation) and self._handle is handle:
            await self._discard_handle()

    def _superseded(self, generation: int) -> bool:
        """True once a stop, a logout or a newer start has replaced this start."""
        return (
            self._stopped
            or generation != self._generation
            or self._state == SessionState.LOGGED_OUT
        )

    async def logout(self) -> None:
        """Unlink the device, clear stored credentials and stay logged out."""
        self._generation += 1
        self._cancel_reconnect()
        if self._handle is not None and self._handle.is_connected:
            try:
                await self._handle.logout()
            except GatewayError as e:
                handle_exception(e, "session.logout")

        self._qr = None
        self._set_state(SessionState.LOGGED_OUT)
        self._clear_credentials()
        await self._discard_handle()

    async def stop(self) -> None:
        """Cancel any pending retry and in-flight handlers, close the handle."""
        self._stopped = True
        self._cancel_reconnect()
        await self._handler_tasks.cancel_all()
        await self._discard_handle()
        logger.info("Session stopped")

    async def wait_handlers(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight message handlers to finish."""
        await self._handler_tasks.wait_all(timeout=timeout)

    async def _discard_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as e:
            logger.warning(f"Error closing superseded connection: {e}")

    def _clear_credentials(self) -> None:
        try:
            self._auth_state.clear()
            logger.info("Stored credentials cleared")
        except StoreError as e:
            handle_exception(e, "session.clear_credentials")

    # ── Reconnect policy ───────────────────────────────────────────

    def next_delay(self) -> float:
        """Backoff delay for the next retry: base * 2**attempt, capped."""
        delay = self._config.reconnect_base_delay_seconds * (2 ** self._reconnect_attempt)
        return min(delay, self._config.reconnect_max_delay_seconds)

    def _schedule_reconnect(self, min_delay: float = 0.0) -> bool:
        """
        Schedule one retry.

        Returns:
            True if a retry was scheduled
        """
        if self._stopped or self._state == SessionState.LOGGED_OUT:
            return False

        if self.reconnect_pending:
            logger.debug("Reconnect already pending")
            return False

        max_attempts = self._config.reconnect_max_attempts
        if max_attempts is not None and self._reconnect_attempt >= max_attempts:
            logger.error("Max reconnection attempts reached, giving up")
            return False

        delay = max(self.next_delay(), min_delay)
        self._reconnect_attempt += 1
        logger.info(f"Reconnecting in {delay:g}s (attempt {self._reconnect_attempt})")

        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay), name="session-reconnect"
        )
        return True

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Released before start() so a failing start can schedule the next retry.
        self._reconnect_task = None
        if not self._stopped:
            await self.start()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    # ── Bridge events ──────────────────────────────────────────────

    def _bind(self, handle: BridgeConnection) -> None:
        def current_only(callback: Callable[[Any], Awaitable[None]]):
            async def dispatch(data: Any) -> None:
                if handle is not self._handle:
                    logger.debug("Ignoring event from a superseded connection")
                    return
                await callback(data)
            return dispatch

        handle.on(CONNECTION_UPDATE, current_only(self._on_connection_update))
        handle.on(CREDS_UPDATE, current_only(self._on_creds_update))
        handle.on(KEYS_SET, current_only(self._on_keys_set))
        handle.on(MESSAGES_UPSERT, current_only(self._on_messages_upsert))

    async def _on_connection_update(self, data: Dict[str, Any]) -> None:
        update = ConnectionUpdate.model_validate(data or {})

        if update.qr:
            self._qr = update.qr
            self._set_state(SessionState.PAIRING_REQUIRED)
            logger.info(
                "📱 Scan this QR code in WhatsApp > Linked devices:\n"
                + render_terminal(update.qr)
            )

        if update.connection == "open":
            self._qr = None
            self._reconnect_attempt = 0
            self._set_state(SessionState.OPEN)
            logger.info("✅ Connected to WhatsApp")
        elif update.connection == "close":
            self._qr = None
            await self._handle_close(update)

    async def _handle_close(self, update: ConnectionUpdate) -> None:
        logger.warning(f"⚠️ Connection closed (reason: {update.status_code})")

        if update.is_logged_out:
            handle_exception(
                PairingError("Logged out from WhatsApp, a new pairing is required"),
                "session.connection_update",
            )
            self._cancel_reconnect()
            self._set_state(SessionState.LOGGED_OUT)
            self._clear_credentials()
            await self._discard_handle()
            return

        self._set_state(SessionState.CLOSED)
        self._schedule_reconnect()

    async def _on_creds_update(self, creds: Optional[Dict[str, Any]]) -> None:
        if not creds:
            return

        me = creds.get("me") or {}
        if me.get("id"):
            self._own_jid = me["id"]

        try:
            self._auth_state.save_creds(creds)
        except StoreError as e:
            handle_exception(e, "session.save_creds")

    async def _on_keys_set(self, updates: Optional[Dict[str, Any]]) -> None:
        if not updates:
            return
        try:
            self._auth_state.save_keys(updates)
        except StoreError as e:
            handle_exception(e, "session.save_keys")

    async def _on_messages_upsert(self, data: Optional[Dict[str, Any]]) -> None:
        for raw in (data or {}).get("messages", []):
            try:
                message = InboundMessage.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping malformed message: {e}")
                continue

            if not self._should_handle(message):
                continue

            for handler in self._message_handlers:
                self._handler_tasks.spawn(
                    self._run_handler(handler, message),
                    name=f"message-{message.key.id}",
                )

    def _should_handle(self, message: InboundMessage) -> bool:
        if not message.has_content:
            return False
        if message.key.from_me:
            return False
        if self._own_jid and jid_user(message.sender) == jid_user(self._own_jid):
            return False
        if self._config.ignore_groups and (message.is_group or message.is_broadcast):
            return False
        return True

    async def _run_handler(self, handler: MessageHandler, message: InboundMessage) -> None:
        try:
            await handler(message)
        except Exception as e:
            handle_exception(e, f"message_handler:{message.sender}")

    # ── Outbound ───────────────────────────────────────────────────

    def _require_open(self) -> BridgeConnection:
        if self._handle is None or self._state != SessionState.OPEN:
            raise GatewayError("No open WhatsApp connection")
        return self._handle

    async def send_text(self, jid: str, text: str) -> None:
        await self._require_open().send_message(jid, {"text": text})

    async def send_presence(self, presence: str, jid: str) -> None:
        await self._require_open().send_presence(presence, jid)

    async def presence_subscribe(self, jid: str) -> None:
        await self._require_open().presence_subscribe(jid)
