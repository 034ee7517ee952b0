from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple


_PORT_ENV = "PORT"
_ALLOWED_ORIGINS_ENV = "ALLOWED_ORIGINS"
_ENVIRONMENT_ENV = "NODE_ENV"
_LOG_LEVEL_ENV = "LOG_LEVEL"
_RATE_LIMIT_MAX_ENV = "RATE_LIMIT_MAX"
_RATE_LIMIT_WINDOW_ENV = "RATE_LIMIT_WINDOW_SECONDS"

DEVELOPMENT = "development"


@dataclass(frozen=True)
class Settings:
    port: int = 8080
    allowed_origins: Tuple[str, ...] = ("*",)
    environment: str = DEVELOPMENT
    log_level: str = "INFO"
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 15 * 60

    @property
    def is_development(self) -> bool:
        return self.environment == DEVELOPMENT


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_origins(default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(_ALLOWED_ORIGINS_ENV)
    if value is None:
        return default
    origins = tuple(origin.strip() for origin in value.split(",") if origin.strip())
    return origins or default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        port=_read_positive_int(_PORT_ENV, 8080),
        allowed_origins=_read_origins(("*",)),
        environment=_read_str_env(_ENVIRONMENT_ENV, DEVELOPMENT).lower(),
        log_level=_read_log_level("INFO"),
        rate_limit_max=_read_positive_int(_RATE_LIMIT_MAX_ENV, 100),
        rate_limit_window_seconds=_read_positive_int(_RATE_LIMIT_WINDOW_ENV, 15 * 60),
    )
