"""Data models for the auto-reply bot."""

from enum import Enum, IntEnum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

GROUP_SUFFIX = "@g.us"
BROADCAST_SUFFIX = "@broadcast"


def jid_user(jid: str) -> str:
    """User part of a JID, without server or device suffix."""
    return jid.split("@", 1)[0].split(":", 1)[0]


class DisconnectReason(IntEnum):
    """Status codes the protocol client reports when a connection closes."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


class SessionState(Enum):
    """Lifecycle states of the session manager."""

    UNINITIALIZED = "uninitialized"
    CONNECTING = "connecting"
    PAIRING_REQUIRED = "pairing_required"
    OPEN = "open"
    CLOSED = "closed"
    LOGGED_OUT = "logged_out"


class AuthState(BaseModel):
    """Session credentials plus signal keys, as handed to the bridge."""

    creds: Optional[Dict[str, Any]] = None
    keys: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

    @property
    def is_registered(self) -> bool:
        return self.creds is not None

    @property
    def own_jid(self) -> Optional[str]:
        """The paired account's JID, when the creds carry one."""
        me = (self.creds or {}).get("me") or {}
        return me.get("id")


class LastDisconnect(BaseModel):
    """Why the last connection closed."""

    status_code: Optional[int] = Field(default=None, alias="statusCode")
    message: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @property
    def reason(self) -> Optional[DisconnectReason]:
        try:
            return DisconnectReason(self.status_code)
        except ValueError:
            return None


class ConnectionUpdate(BaseModel):
    """Payload of a ``connection.update`` event."""

    connection: Optional[Literal["connecting", "open", "close"]] = None
    qr: Optional[str] = None
    last_disconnect: Optional[LastDisconnect] = Field(default=None, alias="lastDisconnect")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def status_code(self) -> Optional[int]:
        return self.last_disconnect.status_code if self.last_disconnect else None

    @property
    def is_logged_out(self) -> bool:
        return self.status_code == DisconnectReason.LOGGED_OUT


class MessageKey(BaseModel):
    """Addressing part of an inbound message."""

    remote_jid: str = Field(alias="remoteJid")
    from_me: bool = Field(default=False, alias="fromMe")
    id: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class InboundMessage(BaseModel):
    """A single message from a ``messages.upsert`` batch."""

    key: MessageKey
    message: Optional[Dict[str, Any]] = None
    push_name: Optional[str] = Field(default=None, alias="pushName")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def sender(self) -> str:
        return self.key.remote_jid

    @property
    def has_content(self) -> bool:
        return bool(self.message)

    @property
    def text(self) -> str:
        """Plain or extended text body; empty for media and other types."""
        if not self.message:
            return ""
        conversation = self.message.get("conversation")
        if conversation:
            return conversation
        extended = self.message.get("extendedTextMessage") or {}
        return extended.get("text") or ""

    @property
    def is_group(self) -> bool:
        return self.sender.endswith(GROUP_SUFFIX)

    @property
    def is_broadcast(self) -> bool:
        return self.sender.endswith(BROADCAST_SUFFIX)

