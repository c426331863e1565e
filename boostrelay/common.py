"""Shared relay settings, error types, metrics records and logging setup."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

_LOGGER_NAME = "boostrelay"

_LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}

_LEVEL_NAMES = {
    logging.CRITICAL: "fatal",
    logging.ERROR: "error",
    logging.WARNING: "warning",
    logging.INFO: "info",
    logging.DEBUG: "debug",
    TRACE: "trace",
}

_RESERVED_RECORD_KEYS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}


class RelayError(Exception):
    """Base class for errors raised by the relay."""


class ServerAlreadyRunningError(RelayError):
    """The server was asked to start while already running."""

    def __init__(self, message: str = "server already running") -> None:
        super().__init__(message)


class InvalidSlotError(RelayError, ValueError):
    """A slot value is not acceptable."""

    def __init__(self, message: str = "invalid slot") -> None:
        super().__init__(message)


class InvalidHashError(RelayError, ValueError):
    """A hash value is not acceptable."""

    def __init__(self, message: str = "invalid hash") -> None:
        super().__init__(message)


class InvalidPubkeyError(RelayError, ValueError):
    """A public key is not acceptable."""

    def __init__(self, message: str = "invalid pubkey") -> None:
        super().__init__(message)


class InvalidSignatureError(RelayError, ValueError):
    """A signature is not acceptable."""

    def __init__(self, message: str = "invalid signature") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class HTTPServerTimeouts:
    """Timeouts for the HTTP server; a zero duration means no timeout."""

    read: timedelta = timedelta(0)
    read_header: timedelta = timedelta(0)
    write: timedelta = timedelta(0)
    idle: timedelta = timedelta(0)


@dataclass
class BuilderStatus:
    """How blocks from a builder are processed."""

    is_high_prio: bool = False
    is_blacklisted: bool = False
    is_optimistic: bool = False


@dataclass
class Profile:
    """Microseconds spent in each stage of a block submission."""

    decode: int = 0
    prechecks: int = 0
    simulation: int = 0
    redis_update: int = 0
    total: int = 0

    def __str__(self) -> str:
        return (
            f"{self.decode},{self.prechecks},{self.simulation},"
            f"{self.redis_update},{self.total}"
        )


def _env_int(key: str, default: int) -> int:
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def seconds_per_slot() -> int:
    """Seconds per slot, from SEC_PER_SLOT (default 12)."""
    return _env_int("SEC_PER_SLOT", 12)


def slots_per_epoch() -> int:
    """Slots per epoch, from SLOTS_PER_EPOCH (default 32)."""
    return _env_int("SLOTS_PER_EPOCH", 32)


def duration_per_slot() -> timedelta:
    """Length of one slot."""
    return timedelta(seconds=seconds_per_slot())


def duration_per_epoch() -> timedelta:
    """Length of one epoch."""
    return duration_per_slot() * slots_per_epoch()


def _extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_RECORD_KEYS and not key.startswith("_")
    }


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).astimezone().isoformat(
        timespec="seconds"
    )


def _level_name(record: logging.LogRecord) -> str:
    return _LEVEL_NAMES.get(record.levelno, record.levelname.lower())


class _JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = dict(_extra_fields(record))
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        entry["level"] = _level_name(record)
        entry["msg"] = record.getMessage()
        entry["time"] = _timestamp(record)
        return json.dumps(entry, default=str)


def _quote(value: object) -> str:
    text = str(value)
    if text and all(c.isalnum() or c in "-._/@^+" for c in text):
        return text
    return json.dumps(text)


class _TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        parts = [
            f"time={_quote(_timestamp(record))}",
            f"level={_level_name(record)}",
            f"msg={_quote(record.getMessage())}",
        ]
        if record.exc_info:
            parts.append(f"error={_quote(self.formatException(record.exc_info))}")
        parts.extend(
            f"{key}={_quote(value)}"
            for key, value in sorted(_extra_fields(record).items())
        )
        return " ".join(parts)


def log_setup(json_format: bool, log_level: str) -> logging.Logger:
    """Configure and return the relay logger writing to stdout.

    Raises ValueError for an unknown log level name.
    """
    logger = logging.getLogger(_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(_JSONFormatter() if json_format else _TextFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    logger.setLevel(logging.INFO)

    if log_level:
        level = _LEVELS.get(log_level.lower())
        if level is None:
            raise ValueError(f"Invalid loglevel: {log_level}")
        logger.setLevel(level)
    return logger