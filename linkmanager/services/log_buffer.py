"""
linkmanager.services.log_buffer — In-Memory System Log Channel
===============================================================

Provides a thread-safe ring buffer that plugs into Python's ``logging``
framework.  This is the low-level channel admins look at when the audit
table itself cannot be written, and where the render-time resolver reports
its fallbacks and misses.

Adds a ``NOTICE`` level (between INFO and WARNING) for "normal but worth
seeing" outcomes such as a placement that resolved to nothing.

No persistence — entries are lost on restart.  Durable history belongs in
the audit log table.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")

DEFAULT_CAPACITY = 2000
VALID_LEVELS = ("DEBUG", "INFO", "NOTICE", "WARNING", "ERROR", "CRITICAL")

# Logger the handler is attached to; every module logger lives below it.
ROOT_LOGGER = "linkmanager"

# Module-level singleton — one per process
_buffer: LogBuffer | None = None
_lock = threading.Lock()


def _level_number(name: str) -> int:
    value = logging.getLevelName(name.upper())
    return value if isinstance(value, int) else 0


class BufferedRecord:
    """One captured log record."""
    __slots__ = ("timestamp", "level", "logger", "message")

    def __init__(self, timestamp: str, level: str, logger: str, message: str):
        self.timestamp = timestamp
        self.level = level
        self.logger = logger
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {
            "timestamp": self.timestamp,
            "level": self.level,
            "logger": self.logger,
            "message": self.message,
        }


class LogBuffer:
    """Thread-safe ring buffer backed by :class:`collections.deque`."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._entries: deque[BufferedRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry: BufferedRecord) -> None:
        with self._lock:
            self._entries.append(entry)

    def get_entries(
        self,
        tail: int = 200,
        level: str | None = None,
        logger_filter: str | None = None,
    ) -> list[dict[str, str]]:
        """Return the most recent *tail* entries, optionally filtered."""
        min_level = _level_number(level) if level else 0

        with self._lock:
            snapshot = list(self._entries)

        results: list[dict[str, str]] = []
        for entry in snapshot:
            if min_level and _level_number(entry.level) < min_level:
                continue
            # Logger filter (prefix match)
            if logger_filter and not entry.logger.startswith(logger_filter):
                continue
            results.append(entry.to_dict())

        if tail and len(results) > tail:
            results = results[-tail:]

        return results

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)


class RingBufferHandler(logging.Handler):
    """Logging handler that appends records to a :class:`LogBuffer`."""

    def __init__(self, buffer: LogBuffer, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self._buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = BufferedRecord(
                timestamp=datetime.fromtimestamp(
                    record.created, tz=UTC
                ).isoformat(),
                level=record.levelname,
                logger=record.name,
                message=self.format(record) if self.formatter else record.getMessage(),
            )
            self._buffer.append(entry)
        except Exception:
            self.handleError(record)


# ---------------------------------------------------------------------------
# Singleton access
# ---------------------------------------------------------------------------
def get_buffer(capacity: int = DEFAULT_CAPACITY) -> LogBuffer:
    """Return (or create) the process-global log buffer.

    *capacity* only applies the first time the buffer is created.
    """
    global _buffer
    if _buffer is None:
        with _lock:
            if _buffer is None:
                _buffer = LogBuffer(capacity)
    return _buffer


def _installed_handler() -> RingBufferHandler | None:
    for h in logging.getLogger(ROOT_LOGGER).handlers:
        if isinstance(h, RingBufferHandler):
            return h
    return None


def install_handler(
    level: int = logging.INFO,
    capacity: int = DEFAULT_CAPACITY,
) -> RingBufferHandler:
    """Attach the ring-buffer handler to the ``linkmanager`` logger.

    Idempotent: a second call returns the handler already installed.
    """
    existing = _installed_handler()
    if existing is not None:
        return existing

    handler = RingBufferHandler(get_buffer(capacity), level=level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    log = logging.getLogger(ROOT_LOGGER)
    log.addHandler(handler)
    if log.level == logging.NOTSET or log.level > level:
        log.setLevel(level)
    return handler


def get_logs(
    tail: int = 200,
    level: str | None = None,
    logger_filter: str | None = None,
) -> list[dict[str, str]]:
    """Convenience wrapper — fetch entries from the global buffer."""
    return get_buffer().get_entries(tail=tail, level=level, logger_filter=logger_filter)


def get_current_level() -> str:
    """Return the effective minimum level being captured to the buffer."""
    handler = _installed_handler()
    if handler is not None:
        return logging.getLevelName(handler.level)
    return logging.getLevelName(logging.getLogger(ROOT_LOGGER).getEffectiveLevel())


def set_capture_level(level_name: str) -> str:
    """Change the minimum level of the ring-buffer handler on-the-fly.

    Returns the new effective level name.
    """
    level_name = level_name.upper()
    if level_name not in VALID_LEVELS:
        raise ValueError(f"Invalid level: {level_name}. Must be one of {VALID_LEVELS}")

    numeric = _level_number(level_name)
    handler = _installed_handler()
    if handler is None:
        handler = install_handler(level=numeric)
    handler.setLevel(numeric)
    log = logging.getLogger(ROOT_LOGGER)
    if log.level > numeric:
        log.setLevel(numeric)
    return level_name
