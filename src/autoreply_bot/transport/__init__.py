"""Transport layer for the messaging bridge."""

from .rest import DEFAULT_VERSION, VersionClient
from .websocket import BridgeConnection, ConnectionState

__all__ = ["BridgeConnection", "ConnectionState", "DEFAULT_VERSION", "VersionClient"]
