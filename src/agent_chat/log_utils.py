"""Logging for the bridge.

The bridge's stdout carries the editor RPC stream, so records go to a rotating
file (and optionally stderr) only. Every record is tagged with the buffer and
ACP session it concerns, taken from ``session_context``.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator, Optional, Tuple

from agent_chat.paths import log_dir
from agent_chat.settings import env_flag, env_int

DEFAULT_LOG_FILE = "bridge.log"
DEFAULT_LOG_MAX_BYTES = 5_000_000
DEFAULT_LOG_BACKUPS = 3

# Chatty third-party loggers held at WARNING whatever the bridge level is.
QUIET_LOGGERS = ("acp", "asyncio")

_SESSION: contextvars.ContextVar[Tuple[Optional[int], Optional[str]]] = contextvars.ContextVar(
    "agent_chat_session", default=(None, None)
)


@dataclass(frozen=True)
class LogConfig:
    log_file: Path
    level: int = logging.INFO
    stderr: bool = False
    json: bool = False
    max_bytes: int = DEFAULT_LOG_MAX_BYTES
    backup_count: int = DEFAULT_LOG_BACKUPS


def parse_level(value: str | None, default: int) -> int:
    """Parse a log level name or number."""
    if not value:
        return default
    if value.isdigit():
        return int(value)
    return logging._nameToLevel.get(value.upper(), default)


def build_log_config(*, level: str | None = None, log_file_name: str = DEFAULT_LOG_FILE) -> LogConfig:
    """Build log configuration from AGENT_CHAT_LOG_* variables.

    ``level`` (from the command line) wins over ``AGENT_CHAT_LOG_LEVEL``.
    """

    directory = Path(os.getenv("AGENT_CHAT_LOG_DIR") or log_dir())
    directory.mkdir(parents=True, exist_ok=True)

    return LogConfig(
        log_file=directory / log_file_name,
        level=parse_level(level or os.getenv("AGENT_CHAT_LOG_LEVEL"), logging.INFO),
        stderr=env_flag("AGENT_CHAT_LOG_STDERR"),
        json=env_flag("AGENT_CHAT_LOG_JSON"),
        max_bytes=env_int("AGENT_CHAT_LOG_MAX_BYTES", DEFAULT_LOG_MAX_BYTES),
        backup_count=env_int("AGENT_CHAT_LOG_BACKUPS", DEFAULT_LOG_BACKUPS),
    )


def configure_logging(config: LogConfig) -> None:
    """Install the bridge handlers on the root logger.

    Existing root handlers are dropped first; a handler writing to stdout
    would corrupt the editor channel.
    """

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(config.level)

    formatter: logging.Formatter = JsonFormatter() if config.json else SessionFormatter()
    handlers: list[logging.Handler] = [
        RotatingFileHandler(
            config.log_file,
            maxBytes=config.max_bytes,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
    ]
    if config.stderr:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(SessionFilter())
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(config.level, logging.WARNING))


@contextlib.contextmanager
def session_context(buffer_id: int | None, session_id: str | None = None) -> Iterator[None]:
    """Tag log records emitted within the block with a buffer and ACP session."""

    token = _SESSION.set((buffer_id, session_id or None))
    try:
        yield
    finally:
        _SESSION.reset(token)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log a short, stable event name with key=value fields."""

    logger.log(level, event, extra={"event_fields": fields})


def _format_value(value: Any) -> str:
    if isinstance(value, str):
        if value == "" or any(ch.isspace() for ch in value) or "=" in value or '"' in value:
            return json.dumps(value)
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str)
    return str(value)


class SessionFilter(logging.Filter):
    """Copy the current buffer/session tag onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - logging API name
        record.buffer_id, record.session_id = _SESSION.get()
        if not hasattr(record, "event_fields"):
            record.event_fields = {}
        return True


class SessionFormatter(logging.Formatter):
    """``<time> <level> <logger> [buf=<id> sid=<session>] <event> k=v ...``"""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def formatMessage(self, record: logging.LogRecord) -> str:  # noqa: N802 - logging API name
        tag = []
        if getattr(record, "buffer_id", None) is not None:
            tag.append(f"buf={record.buffer_id}")
        if getattr(record, "session_id", None):
            tag.append(f"sid={record.session_id}")
        if tag:
            record.message = f"[{' '.join(tag)}] {record.message}"
        fields = getattr(record, "event_fields", {})
        pairs = [f"{key}={_format_value(value)}" for key, value in fields.items() if value is not None]
        if pairs:
            record.message = f"{record.message} {' '.join(pairs)}"
        return super().formatMessage(record)


class JsonFormatter(logging.Formatter):
    """One flat JSON object per record: event name, buffer, session, then fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        if getattr(record, "buffer_id", None) is not None:
            payload["buffer_id"] = record.buffer_id
        if getattr(record, "session_id", None):
            payload["session_id"] = record.session_id
        for key, value in getattr(record, "event_fields", {}).items():
            payload.setdefault(key, value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)
