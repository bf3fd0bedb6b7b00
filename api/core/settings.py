"""
Process settings read from the environment.

Only `DATABASE_URL` is required; everything else has a local-friendly default.
"""

from __future__ import annotations

import math
import os
from dataclasses import dataclass


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, "").strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_positive_float(name: str, default: float) -> float:
    value = _env_float(name, default)
    if not math.isfinite(value) or value <= 0:
        return default
    return value


def _env_list(name: str, default: str) -> tuple[str, ...]:
    raw = _env_str(name, default)
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000
    pool_min_size: int = 1
    pool_max_size: int = 5
    command_timeout_s: float = 30.0
    query_timeout_s: float = 30.0
    cors_allow_origins: tuple[str, ...] = ("*",)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        pool_min_size = max(0, _env_int("DB_POOL_MIN_SIZE", cls.pool_min_size))
        # asyncpg refuses min_size > max_size.
        pool_max_size = max(1, pool_min_size, _env_int("DB_POOL_MAX_SIZE", cls.pool_max_size))
        return cls(
            host=_env_str("API_HOST", cls.host),
            port=_env_int("API_PORT", cls.port),
            pool_min_size=pool_min_size,
            pool_max_size=pool_max_size,
            command_timeout_s=_env_positive_float("DB_COMMAND_TIMEOUT_S", cls.command_timeout_s),
            query_timeout_s=_env_positive_float("QUERY_TIMEOUT_S", cls.query_timeout_s),
            cors_allow_origins=_env_list("CORS_ALLOW_ORIGINS", "*"),
            log_level=_env_str("LOG_LEVEL", cls.log_level).upper(),
        )
