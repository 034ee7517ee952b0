from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.config import dictConfig
from typing import Any, Iterable, Sequence

from settings import get_settings

_DEFAULT_EXTRA_KEYS = (
    "method",
    "path",
    "status",
    "client",
    "duration_ms",
    "project_id",
    "user_id",
    "sensor_id",
    "points",
)

_HANDLER_NAME = "default"

# (formatter kind, level) currently installed on the root handler.
_configured: tuple[str, str | int] | None = None


def _collect_extras(record: logging.LogRecord, keys: Iterable[str]) -> dict[str, Any]:
    extras: dict[str, Any] = {}
    for key in keys:
        value = getattr(record, key, None)
        if value is None:
            continue
        extras[key] = value
    return extras


class ContextualFormatter(logging.Formatter):

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        style: str = "%",
        extra_keys: Iterable[str] | None = None,
    ) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt, style=style)
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        extras = _collect_extras(record, self._extra_keys)
        if extras:
            context = " ".join(f"{key}={value}" for key, value in extras.items())
            return f"{message} | {context}"
        return message


class JsonFormatter(logging.Formatter):
    """One JSON object per line, used outside development."""

    def __init__(self, extra_keys: Iterable[str] | None = None) -> None:
        super().__init__()
        self._extra_keys: Sequence[str] = tuple(extra_keys or _DEFAULT_EXTRA_KEYS)

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_collect_extras(record, self._extra_keys))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def build_formatter(kind: str) -> logging.Formatter:
    if kind == "json":
        return JsonFormatter(extra_keys=_DEFAULT_EXTRA_KEYS)
    return ContextualFormatter(
        fmt="%(asctime)sZ | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        style="%",
        extra_keys=_DEFAULT_EXTRA_KEYS,
    )


def configure_logging(
    level: str | int | None = None,
    environment: str | None = None,
) -> None:
    """Configure application-wide logging.

    Development gets the human readable contextual format, every other
    environment gets JSON lines. Later calls with a different environment or
    level retarget the installed handler instead of being ignored.
    """
    global _configured
    settings = get_settings()
    log_level = level if level is not None else settings.log_level
    env = environment if environment is not None else settings.environment
    kind = "contextual" if env == "development" else "json"

    if _configured is not None:
        if _configured != (kind, log_level):
            _retarget_default_handler(kind, log_level)
            _configured = (kind, log_level)
        return

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "contextual": {
                    "()": "logging_config.build_formatter",
                    "kind": "contextual",
                },
                "json": {
                    "()": "logging_config.build_formatter",
                    "kind": "json",
                },
            },
            "handlers": {
                _HANDLER_NAME: {
                    "class": "logging.StreamHandler",
                    "level": log_level,
                    "formatter": kind,
                }
            },
            "root": {"handlers": [_HANDLER_NAME], "level": log_level},
        }
    )

    _configured = (kind, log_level)


def _retarget_default_handler(kind: str, level: str | int) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            handler.setFormatter(build_formatter(kind))
            handler.setLevel(level)
