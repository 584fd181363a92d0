"""
WhatsApp auto-reply bot.

Keeps a WhatsApp session alive through a protocol bridge, persists its
credentials in PostgreSQL or SQLite, and answers inbound text with a
four-option menu.
"""

from .bot import AutoReplyBot
from .config import AuthLayout, BotConfig, StorageBackend
from .exceptions import (
    BotError,
    ConfigurationError,
    GatewayError,
    PairingError,
    StoreConnectionError,
    StoreError,
)
from .models import AuthState, ConnectionUpdate, DisconnectReason, InboundMessage, SessionState
from .router import MenuReplies, MessageRouter, normalize
from .session import SessionManager

__version__ = "0.1.0"
__all__ = [
    "AutoReplyBot",
    "AuthLayout",
    "BotConfig",
    "StorageBackend",
    "BotError",
    "ConfigurationError",
    "GatewayError",
    "PairingError",
    "StoreConnectionError",
    "StoreError",
    "AuthState",
    "ConnectionUpdate",
    "DisconnectReason",
    "InboundMessage",
    "SessionState",
    "MenuReplies",
    "MessageRouter",
    "normalize",
    "SessionManager",
]
