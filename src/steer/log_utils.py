"""File logging for the interactive client, with structured event fields.

The terminal belongs to the prompt and the streamed response, so records go
to a rotating file under the user log dir. `log_event` writes a short event
name plus key=value fields; `log_context` adds fields such as the turn number
to every record emitted inside a block.
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
from typing import Any, Dict, Iterator

from steer.paths import log_dir

ENV_PREFIX = "STEER_LOG_"
DEFAULT_LOG_FILE = "steer-client.log"
DEFAULT_LOG_MAX_BYTES = 5_000_000
DEFAULT_LOG_BACKUPS = 3
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar("steer_log_context", default={})
_deltas_enabled = False


@dataclass(frozen=True)
class LogConfig:
    log_file: Path
    level: int = logging.INFO
    stderr: bool = False
    json: bool = False
    log_deltas: bool = False
    max_bytes: int = DEFAULT_LOG_MAX_BYTES
    backup_count: int = DEFAULT_LOG_BACKUPS


class _Env:
    """Reads `STEER_LOG_<NAME>` settings; unparseable values fall back to the default."""

    def raw(self, name: str) -> str | None:
        value = os.getenv(ENV_PREFIX + name)
        return value.strip() if value is not None else None

    def flag(self, name: str) -> bool:
        return (self.raw(name) or "").lower() in {"1", "true", "yes", "on"}

    def number(self, name: str, default: int) -> int:
        value = self.raw(name)
        if value and value.isdigit():
            return int(value)
        return default

    def level(self, default: int) -> int:
        value = self.raw("LEVEL")
        if not value:
            return default
        if value.isdigit():
            return int(value)
        return logging.getLevelNamesMapping().get(value.upper(), default)


def build_log_config(*, log_file_name: str = DEFAULT_LOG_FILE, default_level: int = logging.INFO) -> LogConfig:
    env = _Env()
    override = env.raw("DIR")
    directory = Path(override) if override else log_dir()
    directory.mkdir(parents=True, exist_ok=True)
    return LogConfig(
        log_file=directory / log_file_name,
        level=env.level(default_level),
        stderr=env.flag("STDERR"),
        json=env.flag("JSON"),
        log_deltas=env.flag("DELTAS"),
        max_bytes=env.number("MAX_BYTES", DEFAULT_LOG_MAX_BYTES),
        backup_count=env.number("BACKUPS", DEFAULT_LOG_BACKUPS),
    )


def configure_logging(config: LogConfig) -> None:
    """Replace the root handlers with the rotating file (plus stderr when asked)."""
    global _deltas_enabled
    _deltas_enabled = config.log_deltas

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    root.setLevel(config.level)

    formatter = JsonFormatter() if config.json else ContextFormatter(TEXT_FORMAT)
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
        handler.addFilter(ContextFilter())
        root.addHandler(handler)


def log_deltas_enabled() -> bool:
    """Per-token text deltas are logged only when `STEER_LOG_DELTAS` is set."""
    return _deltas_enabled


@contextlib.contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    merged = {**_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _context.set(merged)
    try:
        yield
    finally:
        _context.reset(token)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log `event` (e.g. `turn.start`, `interrupt.spliced`) with its fields."""
    logger.log(level, event, extra={"event_fields": fields})


def _render(value: Any) -> str:
    if isinstance(value, str):
        if not value or any(ch.isspace() or ch in '="' for ch in value):
            return json.dumps(value)
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str)
    return str(value)


def _pairs(fields: Dict[str, Any]) -> list[str]:
    return [f"{key}={_render(fields[key])}" for key in sorted(fields) if fields[key] is not None]


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - logging API name
        record.context_fields = dict(_context.get())
        record.event_fields = getattr(record, "event_fields", {})
        return True


class ContextFormatter(logging.Formatter):
    """Text lines: the standard prefix, then context fields, then event fields."""

    def format(self, record: logging.LogRecord) -> str:
        pairs = _pairs(getattr(record, "context_fields", {})) + _pairs(getattr(record, "event_fields", {}))
        return " ".join([super().format(record), *pairs])


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, attr in (("context", "context_fields"), ("fields", "event_fields")):
            value = getattr(record, attr, {})
            if value:
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)
