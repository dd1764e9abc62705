"""
Questline Logging Subsystem

Structured, async-safe logging for the quest services.

- Records are handed to a bounded queue by a QueueHandler on the root logger
  and written by a QueueListener thread, so file I/O never runs on the event
  loop. When the queue is full the record is dropped with a notice on stderr.
- The listener writes to two sinks: stderr (JSON in production, plain or
  colored text elsewhere) and a daily rotating JSON file under LOGS_DIR.
  stdout is left to command output.
- ``LogContext`` binds user_id, quest_id, correlation_id, component and
  operation to every record emitted inside it, per asyncio task.

Settings come from ``src.core.config.config.Config`` (LOG_LEVEL, LOG_JSON,
LOG_COLORS, LOGS_DIR, ENVIRONMENT).
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from src.core.config.config import Config

CONTEXT_FIELDS = ("user_id", "quest_id", "correlation_id", "component", "operation")

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DAILY_LOG_FILE = "questline_daily.json.log"
QUEUE_MAX_SIZE = 10_000

_context: ContextVar[Dict[str, Any]] = ContextVar("questline_log_context", default={})
_listener: Optional[QueueListener] = None
_queue_handler: Optional[QueueHandler] = None


def _log_level() -> int:
    return getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO)


def _json_console() -> bool:
    if Config.LOG_JSON is None:
        return Config.is_production()
    return bool(Config.LOG_JSON)


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the bound LogContext fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        bound = _context.get()
        for field in CONTEXT_FIELDS:
            setattr(record, field, bound.get(field) or "N/A")
        if record.component == "N/A":
            record.component = record.name.rsplit(".", 1)[-1]
        return True


class ConsoleFormatter(logging.Formatter):
    LEVEL_COLORS: Dict[str, str] = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }

    def __init__(self, colors: bool = False) -> None:
        super().__init__(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT)
        self.colors = colors

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        color = self.LEVEL_COLORS.get(record.levelname) if self.colors else None
        if color is None:
            return super().format(record)

        levelname = record.levelname
        record.levelname = f"{color}{levelname}\033[0m"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JSONFormatter(logging.Formatter):
    """One JSON object per record; caller ``extra`` lands under "extra"."""

    RESERVED = frozenset(vars(logging.makeLogRecord({}))) | {
        "message",
        "asctime",
        "taskName",
        *CONTEXT_FIELDS,
    }

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }

        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value not in (None, "N/A"):
                payload[field] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in self.RESERVED and not key.startswith("_")
        }
        if extra:
            payload["extra"] = extra

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class BoundedQueueHandler(QueueHandler):
    """Drop records instead of blocking when the listener falls behind."""

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            sys.stderr.write(f"Questline log queue full; dropped record from {record.name}.\n")


# ============================================================================
# Setup / Shutdown
# ============================================================================


def _build_console_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    if _json_console():
        handler.setFormatter(JSONFormatter())
    else:
        colors = bool(Config.LOG_COLORS) and sys.stderr.isatty()
        handler.setFormatter(ConsoleFormatter(colors=colors))
    return handler


def _build_daily_file_handler() -> logging.Handler:
    logs_dir = Path(Config.LOGS_DIR)
    logs_dir.mkdir(parents=True, exist_ok=True)

    handler = TimedRotatingFileHandler(
        filename=str(logs_dir / DAILY_LOG_FILE),
        when="midnight",
        backupCount=1,
        encoding="utf-8",
        utc=True,
    )
    handler.setFormatter(JSONFormatter())
    return handler


def setup_logging() -> None:
    """Install the queue handler on the root logger. Safe to call repeatedly."""
    global _listener, _queue_handler

    if _listener is not None:
        return

    level = _log_level()
    root = logging.getLogger()
    root.setLevel(level)

    records: "queue.Queue[logging.LogRecord]" = queue.Queue(QUEUE_MAX_SIZE)
    _listener = QueueListener(
        records,
        _build_console_handler(),
        _build_daily_file_handler(),
    )
    _listener.start()

    _queue_handler = BoundedQueueHandler(records)
    _queue_handler.setLevel(level)
    _queue_handler.addFilter(ContextFilter())
    root.addHandler(_queue_handler)

    for noisy in ("asyncio", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "level": logging.getLevelName(level),
            "json_console": _json_console(),
            "logs_dir": str(Config.LOGS_DIR),
        },
    )


def shutdown_logging() -> None:
    """Flush queued records and detach the handler."""
    global _listener, _queue_handler

    if _listener is None:
        return

    _listener.stop()
    for handler in _listener.handlers:
        handler.close()
    _listener = None

    if _queue_handler is not None:
        logging.getLogger().removeHandler(_queue_handler)
        _queue_handler.close()
        _queue_handler = None


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


def get_log_context() -> Dict[str, Any]:
    """Return a copy of the context currently bound to this task."""
    return dict(_context.get())


class LogContext:
    """
    Bind contextual fields to every log record emitted inside the block.

    Fields not given are inherited from the enclosing context; a new
    correlation id is generated only when none is bound yet.

    Example
    -------
    >>> async with LogContext(user_id="user_000001", quest_id="q1",
    ...                       operation="complete_quest"):
    ...     logger.info("Completing quest")
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        quest_id: Optional[str] = None,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self.fields: Dict[str, Any] = {
            "user_id": str(user_id) if user_id is not None else None,
            "quest_id": str(quest_id) if quest_id is not None else None,
            "component": component,
            "operation": operation,
            "correlation_id": correlation_id,
            **extra,
        }
        self.context: Dict[str, Any] = {}
        self._token: Optional[Token[Dict[str, Any]]] = None

    @property
    def correlation_id(self) -> str:
        return self.context["correlation_id"]

    def __enter__(self) -> "LogContext":
        merged = dict(_context.get())
        merged.update({key: value for key, value in self.fields.items() if value is not None})
        merged.setdefault("correlation_id", uuid.uuid4().hex[:8])
        self.context = merged
        self._token = _context.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


setup_logging()
