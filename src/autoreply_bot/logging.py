"""Logging setup and exception reporting."""

import logging
import sys
import traceback
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

from .exceptions import (
    ConfigurationError,
    GatewayError,
    PairingError,
    StoreConnectionError,
    StoreError,
)

LOGGER_NAME = "autoreply_bot"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogLevel(str, Enum):
    """Logging level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def numeric(self) -> int:
        return getattr(logging, self.value)


# First match wins. Anything unlisted is a bug and reported as critical.
_SEVERITY = (
    (PairingError, LogLevel.WARNING),
    (ConfigurationError, LogLevel.WARNING),
    (StoreError, LogLevel.ERROR),
    (GatewayError, LogLevel.ERROR),
)


def classify(exception: BaseException) -> LogLevel:
    """Severity of an exception by its type."""
    for exc_type, level in _SEVERITY:
        if isinstance(exception, exc_type):
            return level
    return LogLevel.CRITICAL


@dataclass
class ErrorRecord:
    """One reported exception."""

    error_type: str
    message: str
    context: Optional[str]
    level: LogLevel
    timestamp: datetime = field(default_factory=datetime.now)
    traceback: str = ""


class ErrorHandler:
    """
    Package log configuration and exception reporting.

    A singleton: the first instance attaches a stdout handler to the
    ``autoreply_bot`` logger and later instances return the same object.
    Reported exceptions are logged at the severity of their type and kept
    in a bounded history.
    """

    _instance: Optional["ErrorHandler"] = None

    def __new__(cls) -> "ErrorHandler":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._initialized = True
        self.logger = logging.getLogger(LOGGER_NAME)
        self.log_level = LogLevel.INFO
        self.history: Deque[ErrorRecord] = deque(maxlen=500)

        if not self.logger.handlers:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
            self.logger.addHandler(console)
        self.logger.setLevel(logging.DEBUG)
        self.set_log_level(self.log_level)

    def set_log_level(self, level: LogLevel) -> None:
        """Console threshold; file handlers keep logging everything."""
        self.log_level = level
        for handler in self.logger.handlers:
            if not isinstance(handler, logging.FileHandler):
                handler.setLevel(level.numeric)

    def add_file_handler(self, log_file: str) -> None:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        self.logger.addHandler(file_handler)

    def set_history_limit(self, max_records: int) -> None:
        self.history = deque(self.history, maxlen=max_records)

    def report(self, exception: BaseException, context: Optional[str] = None) -> ErrorRecord:
        """
        Log an exception and add it to the history.

        Args:
            exception: The exception being handled
            context: Where it happened, e.g. ``"session.save_creds"``

        Returns:
            The recorded entry
        """
        level = classify(exception)
        record = ErrorRecord(
            error_type=type(exception).__name__,
            message=str(exception),
            context=context,
            level=level,
            traceback="".join(traceback.format_exception(exception)),
        )
        self.history.append(record)

        if isinstance(exception, StoreConnectionError):
            text = f"[{context}] Store unreachable: {exception}"
        elif level == LogLevel.CRITICAL:
            text = f"[{context}] Unexpected error: {record.error_type}: {exception}"
        else:
            text = f"[{context}] {record.error_type}: {exception}"

        exc_info = exception if level == LogLevel.CRITICAL else None
        self.logger.log(level.numeric, text, exc_info=exc_info)
        return record

    def recent(self, count: int = 10, level: Optional[LogLevel] = None) -> List[ErrorRecord]:
        """Latest ``count`` records (0 for all), optionally of one level."""
        records = list(self.history)
        if level is not None:
            records = [r for r in records if r.level == level]
        return records[-count:] if count else records

    def clear_history(self) -> None:
        self.history.clear()

    def summary(self) -> Dict[str, Any]:
        """Recorded errors counted by type and by level."""
        return {
            "total": len(self.history),
            "by_type": dict(Counter(r.error_type for r in self.history)),
            "by_level": dict(Counter(r.level.value for r in self.history)),
        }


_error_handler = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    """Get global error handler instance."""
    return _error_handler


def configure_logging(
    log_level: LogLevel = LogLevel.INFO, log_file: Optional[str] = None
) -> None:
    """
    Configure logging globally.

    Args:
        log_level: Console logging level
        log_file: Optional log file path (logs at DEBUG)
    """
    _error_handler.set_log_level(log_level)
    if log_file:
        _error_handler.add_file_handler(log_file)


def handle_exception(exception: BaseException, context: Optional[str] = None) -> None:
    """Report an exception on the global handler."""
    _error_handler.report(exception, context)
