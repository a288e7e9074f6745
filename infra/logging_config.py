"""Centralized logging configuration.

The service supports both human-friendly text logs and structured JSON logs.
The CLI and the Flask app call :func:`setup_logging` once at startup; library
code only ever does ``logging.getLogger(__name__)``.

Assembly code tags its log records with the site being built through
:func:`log_context`, so interleaved logs from concurrent preload assemblies can
still be told apart in JSON mode.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from infra.config import get_settings

# Context that follows an assembly through every task it spawns
# (asyncio copies the current context into new tasks).
log_ctx: ContextVar[dict[str, Any] | None] = ContextVar("log_ctx", default=None)


def get_log_context() -> dict[str, Any]:
    """Get a copy of the current log context."""
    ctx = log_ctx.get()
    return dict(ctx) if ctx else {}


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Temporarily extend the log context (restored on exit)."""
    current = dict(log_ctx.get() or {})
    current.update(kwargs)
    token = log_ctx.set(current)
    try:
        yield
    finally:
        log_ctx.reset(token)


def _utc_iso8601() -> str:
    # Example: 2026-01-24T18:03:12.123Z
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
        "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
        "relativeCreated", "thread", "threadName", "processName", "process", "taskName",
    }
)


class JsonFormatter(logging.Formatter):
    """
    JSON formatter:
      - Always outputs valid JSON (message escaped via json.dumps)
      - Merges `extra={...}` fields and the current log context
      - Includes exception info when present
    """

    def __init__(self, *, extra_fields: Mapping[str, Any] | None = None) -> None:
        super().__init__()
        self._extra_fields = dict(extra_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "timestamp": _utc_iso8601(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "func": record.funcName,
            "line": record.lineno,
        }

        for k, v in record.__dict__.items():
            if k not in _STANDARD_ATTRS and k not in base:
                base[k] = v

        for k, v in self._extra_fields.items():
            base.setdefault(k, v)

        for k, v in get_log_context().items():
            base.setdefault(k, v)

        if record.exc_info:
            base["exception"] = self.formatException(record.exc_info)

        return json.dumps(base, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """
    Human-friendly logs, UTC timestamps, log context appended as key=value.
    """
    converter = time.gmtime  # UTC

    def __init__(self) -> None:
        super().__init__("%(asctime)sZ | %(levelname)s | %(name)s | %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        ctx = get_log_context()
        if ctx:
            text += " | " + " ".join(f"{k}={v}" for k, v in sorted(ctx.items()))
        return text


class StructuredLogger:
    """
    Event-style logger with automatic context injection.

    Usage:
        logger = StructuredLogger(__name__)
        with log_context(site_id=12):
            logger.info("stage_completed", stage="datasets", duration_ms=12.5)
    """

    def __init__(self, name: str) -> None:
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event: str, **kwargs: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        fields = " ".join(f"{k}={v}" for k, v in kwargs.items())
        message = f"{event} {fields}" if fields else event
        self._logger.log(level, message, extra={"event": event, **kwargs})

    def debug(self, event: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, event, **kwargs)

    def info(self, event: str, **kwargs: Any) -> None:
        self._log(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, event, **kwargs)

    def error(self, event: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, event, **kwargs)

    def log(self, level: int, event: str, **kwargs: Any) -> None:
        self._log(level, event, **kwargs)


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    json_logs: bool = False
    override_root_handlers: bool = False
    extra_fields: Mapping[str, Any] | None = None


def setup_logging(
    *,
    level: str | None = None,
    json_logs: bool | None = None,
    override_root_handlers: bool | None = None,
    extra_fields: Mapping[str, Any] | None = None,
) -> None:
    """
    Central logging setup.

    Env vars:
      - SEAD_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default INFO)
      - SEAD_LOG_JSON:  1/0 (default 0)
      - SEAD_LOG_OVERRIDE: 1/0 (default 0)
         If 1, replaces any pre-configured root handlers.
         If 0, only configures logging if root has no handlers.
    """
    config = get_settings(reload=True).logging

    cfg = LoggingConfig(
        level=(level or config.level).upper(),
        json_logs=json_logs if json_logs is not None else config.json_logs,
        override_root_handlers=override_root_handlers
        if override_root_handlers is not None
        else config.override_root_handlers,
        extra_fields=extra_fields,
    )

    root = logging.getLogger()
    root.setLevel(getattr(logging, cfg.level, logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if cfg.json_logs:
        handler.setFormatter(JsonFormatter(extra_fields=cfg.extra_fields))
    else:
        handler.setFormatter(TextFormatter())

    if cfg.override_root_handlers:
        for h in list(root.handlers):
            root.removeHandler(h)
        root.addHandler(handler)
    elif not root.handlers:
        root.addHandler(handler)

    logging.getLogger("werkzeug").setLevel(logging.WARNING)
