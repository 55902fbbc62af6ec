"""
Process-wide log state for the toolrun layer.

Modules log through ``logging.getLogger(__name__)`` as usual.  A single
``SubscriberHandler`` attached to the ``toolrun`` logger fans every record
out to registered sinks as plain dict entries, so a protocol host can forward
them as notifications.

The level set follows the MCP logging levels.  ``notice``, ``alert`` and
``emergency`` have no stdlib equivalent and are registered as custom levels.

Sinks are append-only: there is no ``remove``.  Tests that need isolation call
``init_logging(..., fresh=True)``, which swaps in a brand-new handler instead
of mutating the existing sink list.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Protocol

ROOT_LOGGER = "toolrun"

LEVELS = ("debug", "info", "notice", "warning", "error", "critical", "alert", "emergency")

NOTICE = 25
ALERT = 55
EMERGENCY = 60

_LEVEL_NUMBERS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "notice": NOTICE,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "alert": ALERT,
    "emergency": EMERGENCY,
}

logging.addLevelName(NOTICE, "NOTICE")
logging.addLevelName(ALERT, "ALERT")
logging.addLevelName(EMERGENCY, "EMERGENCY")


class LogSink(Protocol):
    def __call__(self, entry: dict[str, Any]) -> None: ...


def level_number(level: str) -> int:
    try:
        return _LEVEL_NUMBERS[level]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r} (expected one of {', '.join(LEVELS)})") from None


def level_name(levelno: int) -> str:
    """Map a stdlib level number to the closest MCP level name at or below it."""
    name = "debug"
    for candidate in LEVELS:
        if _LEVEL_NUMBERS[candidate] <= levelno:
            name = candidate
    return name


class SubscriberHandler(logging.Handler):
    """Forwards log records to subscriber sinks as dict entries."""

    def __init__(self, sinks: list[LogSink] | None = None) -> None:
        super().__init__()
        self._sinks: list[LogSink] = list(sinks or [])
        self._sinks_lock = threading.Lock()

    @property
    def sinks(self) -> tuple[LogSink, ...]:
        return tuple(self._sinks)

    def add_sink(self, sink: LogSink) -> None:
        with self._sinks_lock:
            self._sinks.append(sink)

    def emit(self, record: logging.LogRecord) -> None:
        entry: dict[str, Any] = {
            "ts": int(record.created * 1000),
            "level": level_name(record.levelno),
            "msg": record.getMessage(),
            "logger": record.name,
        }
        details = getattr(record, "details", None)
        if isinstance(details, dict):
            entry.update(details)
        for sink in self.sinks:
            try:
                sink(entry)
            except Exception:
                self.handleError(record)


_handler: SubscriberHandler | None = None
_level: str = "info"
_state_lock = threading.Lock()


def _install(handler: SubscriberHandler) -> None:
    global _handler
    root = logging.getLogger(ROOT_LOGGER)
    if _handler is not None:
        root.removeHandler(_handler)
    root.addHandler(handler)
    _handler = handler


def init_logging(
    level: str = "info",
    sinks: list[LogSink] | None = None,
    *,
    fresh: bool = False,
) -> SubscriberHandler:
    """Configure the process-wide level and subscriber handler.

    Calling again without ``fresh`` keeps existing sinks and appends *sinks*.
    """
    with _state_lock:
        handler = _handler
        if handler is None or fresh:
            handler = SubscriberHandler(sinks)
            _install(handler)
        elif sinks:
            for sink in sinks:
                handler.add_sink(sink)
        set_log_level(level)
        return handler


def set_log_level(level: str) -> None:
    global _level
    logging.getLogger(ROOT_LOGGER).setLevel(level_number(level))
    _level = level


def get_log_level() -> str:
    return _level


def on_log(sink: LogSink) -> None:
    """Subscribe *sink* to every record emitted under the ``toolrun`` logger."""
    handler = _handler if _handler is not None else init_logging(_level)
    handler.add_sink(sink)


def log(level: str, msg: str, **extras: Any) -> None:
    logging.getLogger(ROOT_LOGGER).log(
        level_number(level), msg, extra={"details": extras} if extras else None
    )
