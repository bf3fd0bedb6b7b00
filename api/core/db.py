"""
Async database access using asyncpg.

`ConnectionProvider` owns the process-wide connection pool. It is created and
opened once by the bootstrap (the FastAPI lifespan in `api/main.py`, or the
CLI before the listener binds) and closed by the same owner on shutdown.
Requests only borrow the pool through `core.context`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from .errors import ConnectError

logger = logging.getLogger(__name__)

_SCHEMES = {"postgres", "postgresql"}


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    pairs = parse_qsl(parts.query, keep_blank_values=True)
    if not any(k == "sslmode" for (k, _) in pairs):
        return url

    params = [(k, v) for (k, v) in pairs if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def validate_database_url(url: str) -> str:
    """
    Reject URLs asyncpg could never connect with. Returns the sanitized URL.
    """
    raw = (url or "").strip()
    if not raw:
        raise ConnectError("DATABASE_URL is not set.")
    try:
        parts = urlsplit(raw)
        # Accessing .port raises ValueError for a non-numeric port.
        _ = parts.port
    except ValueError as exc:
        raise ConnectError("DATABASE_URL is malformed.") from exc

    if parts.scheme not in _SCHEMES:
        raise ConnectError(f"DATABASE_URL scheme must be postgres or postgresql, got {parts.scheme!r}.")
    if not parts.netloc and "host=" not in parts.query:
        raise ConnectError("DATABASE_URL has no host.")
    return _sanitize_database_url(raw)


def database_url() -> str:
    return validate_database_url(os.environ.get("DATABASE_URL", ""))


def _redact(url: str) -> str:
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class ConnectionProvider:
    def __init__(
        self,
        url: str | None,
        *,
        min_size: int = 1,
        max_size: int = 5,
        command_timeout: float | None = 30,
    ) -> None:
        # url=None defers reading DATABASE_URL until open().
        self._url = validate_database_url(url) if url is not None else None
        self._min_size = min_size
        self._max_size = max_size
        self._command_timeout = command_timeout
        self._pool: asyncpg.Pool | None = None

    @classmethod
    async def connect(cls, url: str, **pool_options) -> "ConnectionProvider":
        """
        Build a provider and open its pool. Raises ConnectError on a malformed
        URL or an unreachable database.
        """
        provider = cls(url, **pool_options)
        await provider.open()
        return provider

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def is_open(self) -> bool:
        return self._pool is not None and not self._pool.is_closing()

    async def open(self) -> None:
        if self._pool is not None:
            return None
        if self._url is None:
            self._url = database_url()
        logger.info(
            "db_pool_opening url=%s min_size=%s max_size=%s",
            _redact(self._url),
            self._min_size,
            self._max_size,
        )
        try:
            self._pool = await asyncpg.create_pool(
                dsn=self._url,
                min_size=self._min_size,
                max_size=self._max_size,
                command_timeout=self._command_timeout,
            )
        except (OSError, asyncio.TimeoutError, ValueError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            raise ConnectError(f"Unable to create connection pool: {exc}") from exc

    async def close(self) -> None:
        if self._pool is None:
            return None
        await self._pool.close()
        self._pool = None
        logger.info("db_pool_closed")

    def get_pool(self) -> asyncpg.Pool:
        if self._pool is None or self._pool.is_closing():
            raise ConnectError("DB pool is not initialized. Call open() on startup.")
        return self._pool
