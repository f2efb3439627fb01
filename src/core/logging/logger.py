"""
Apex Logging Subsystem

Purpose
-------
Structured, async-safe logging for the progression services:

- Records are enqueued by a `QueueHandler` and written by a `QueueListener`
  thread, so awarding XP never blocks on console or file I/O.
- `LogContext` binds athlete / domain / submission ids, the operation name
  and a correlation id to every record emitted inside the block, including
  records from nested coroutines.
- Console output is JSON in production and colored text in a terminal; an
  optional daily-rotated JSON file keeps a local copy.

Fields passed with ``logger.info("msg", extra={...})`` end up under
``"extra"`` in JSON output.

Setup runs once at import, driven by `Config` (LOG_LEVEL, LOG_JSON,
LOG_COLORS, LOG_TO_FILE, LOGS_DIR).
"""

from __future__ import annotations

import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.core.config.config import Config

_log_context: ContextVar[Dict[str, Any]] = ContextVar("apex_log_context", default={})

CONTEXT_FIELDS = (
    "athlete_id",
    "domain_id",
    "submission_id",
    "operation",
    "correlation_id",
)

# Attributes every LogRecord carries; anything else came from `extra=`.
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "component"}


# ============================================================================
# Configuration
# ============================================================================


@dataclass(frozen=True)
class LoggerConfig:
    level: int = logging.INFO
    use_json: bool = False
    use_colors: bool = False
    to_file: bool = False
    logs_dir: Path = Path("logs")
    environment: str = "development"

    console_format: str = "%(asctime)s | %(levelname)-8s | %(name)-36s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    file_name: str = "apex_daily.json.log"
    file_backup_count: int = 1
    queue_max_size: int = 10_000

    @classmethod
    def from_config(cls) -> "LoggerConfig":
        environment = str(Config.ENVIRONMENT).lower()
        production = environment == "production"
        use_json = production if Config.LOG_JSON is None else bool(Config.LOG_JSON)
        return cls(
            level=getattr(logging, str(Config.LOG_LEVEL).upper(), logging.INFO),
            use_json=use_json,
            use_colors=not use_json and bool(Config.LOG_COLORS) and sys.stdout.isatty(),
            to_file=bool(Config.LOG_TO_FILE),
            logs_dir=Path(Config.LOGS_DIR).resolve(),
            environment=environment,
        )


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copies the active LogContext onto the record before it is queued."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()
        for field in CONTEXT_FIELDS:
            if not hasattr(record, field):
                setattr(record, field, context.get(field))
        record.component = record.name.split(".")[-1]
        return True


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[90m",
        "INFO": "\033[94m",
        "WARNING": "\033[93m",
        "ERROR": "\033[91m",
        "CRITICAL": "\033[91m\033[1m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                data[field] = value

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in CONTEXT_FIELDS and not key.startswith("_")
        }
        if extra:
            data["extra"] = extra
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, ensure_ascii=False, default=str)


# ============================================================================
# Queue plumbing
# ============================================================================


class _DroppingQueueHandler(QueueHandler):
    """Drops records instead of blocking when the queue is full."""

    dropped = 0

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            type(self).dropped += 1


@dataclass
class _LoggingState:
    listener: QueueListener
    handler: QueueHandler
    log_queue: "queue.Queue[logging.LogRecord]"
    config: LoggerConfig


_state: Optional[_LoggingState] = None


def _output_handlers(config: LoggerConfig) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    if config.use_json:
        console.setFormatter(JSONFormatter())
    else:
        formatter_cls = ColoredFormatter if config.use_colors else logging.Formatter
        console.setFormatter(formatter_cls(fmt=config.console_format, datefmt=config.date_format))
    handlers: List[logging.Handler] = [console]

    if config.to_file:
        config.logs_dir.mkdir(parents=True, exist_ok=True)
        daily = TimedRotatingFileHandler(
            filename=str(config.logs_dir / config.file_name),
            when="midnight",
            backupCount=config.file_backup_count,
            encoding="utf-8",
            utc=True,
        )
        daily.setFormatter(JSONFormatter())
        handlers.append(daily)

    for handler in handlers:
        handler.setLevel(config.level)
    return handlers


def setup_logging(config: Optional[LoggerConfig] = None) -> None:
    """Install the queue handler on the root logger. No-op when already set up."""
    global _state
    if _state is not None:
        return

    config = config or LoggerConfig.from_config()
    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(config.queue_max_size)

    listener = QueueListener(log_queue, *_output_handlers(config), respect_handler_level=True)
    listener.start()

    handler = _DroppingQueueHandler(log_queue)
    handler.setLevel(config.level)
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.setLevel(config.level)
    root.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if Config.DATABASE_ECHO else logging.WARNING
    )

    _state = _LoggingState(listener, handler, log_queue, config)
    logging.getLogger(__name__).info(
        "Logging initialized",
        extra={
            "environment": config.environment,
            "log_level": logging.getLevelName(config.level),
            "json": config.use_json,
            "file": config.to_file,
        },
    )


def shutdown_logging() -> None:
    """Flush queued records and detach the handler."""
    global _state
    if _state is None:
        return

    state, _state = _state, None
    logging.getLogger().removeHandler(state.handler)
    state.listener.stop()
    state.handler.close()


def get_logging_health() -> Dict[str, Any]:
    if _state is None:
        return {"initialized": False, "queue_size": 0, "dropped": _DroppingQueueHandler.dropped}
    return {
        "initialized": True,
        "queue_size": _state.log_queue.qsize(),
        "queue_max_size": _state.log_queue.maxsize,
        "dropped": _DroppingQueueHandler.dropped,
    }


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind progression identifiers to every log line in a block.

    Nested contexts inherit the enclosing fields; only the values passed
    here are overridden. A correlation id is generated for the outermost
    context and shared by everything inside it.

    >>> async with LogContext(athlete_id=7, domain_id=2, operation="award_xp"):
    ...     logger.info("Awarding XP")
    """

    def __init__(
        self,
        athlete_id: Optional[int] = None,
        domain_id: Optional[int] = None,
        submission_id: Optional[int] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self._fields: Dict[str, Any] = {
            key: value
            for key, value in {
                "athlete_id": athlete_id,
                "domain_id": domain_id,
                "submission_id": submission_id,
                "operation": operation,
                "correlation_id": correlation_id,
                **extra,
            }.items()
            if value is not None
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        merged = {**_log_context.get(), **self._fields}
        merged.setdefault("correlation_id", uuid.uuid4().hex[:8])
        self._token = _log_context.set(merged)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Set fields for the rest of the current task, outside any `with` block."""
    current = dict(_log_context.get())
    current.update({key: value for key, value in fields.items() if value is not None})
    _log_context.set(current)


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


setup_logging()
