"""Custom exceptions for the auto-reply bot."""


class BotError(Exception):
    """Base exception for all bot errors."""

    pass


class ConfigurationError(BotError):
    """Invalid or incomplete configuration."""

    pass


class StoreError(BotError):
    """Credential store read or write failed."""

    pass


class StoreConnectionError(StoreError):
    """Could not reach the credential store."""

    pass


class GatewayError(BotError):
    """Messaging bridge unreachable or rejected a request."""

    pass


class PairingError(GatewayError):
    """Session requires pairing or was logged out."""

    pass
