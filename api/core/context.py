"""
Request-scoped propagation of the database pool.

`DatabaseMiddleware` asks the provider for the pool on every HTTP request and
binds it to a private ContextVar for the duration of the downstream call.
Handlers read it back through `current_pool()` (or the `get_pool` FastAPI
dependency). ContextVar values are task-local, so concurrent requests never
observe each other's binding.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

import asyncpg
from starlette.types import ASGIApp, Receive, Scope, Send

from .db import ConnectionProvider
from .errors import ConnectError, MissingConnectionError, error_response

logger = logging.getLogger(__name__)

# The ContextVar object is the key; nothing outside this module can address it.
_database_pool: ContextVar[object | None] = ContextVar("database_pool", default=None)


@contextmanager
def bind_pool(pool: asyncpg.Pool) -> Iterator[asyncpg.Pool]:
    token = _database_pool.set(pool)
    try:
        yield pool
    finally:
        _database_pool.reset(token)


def current_pool() -> asyncpg.Pool:
    pool = _database_pool.get()
    if not isinstance(pool, asyncpg.Pool):
        raise MissingConnectionError(
            "failed to get connection pool: "
            + ("not bound" if pool is None else f"unexpected type {type(pool).__name__}")
        )
    return pool


async def get_pool() -> asyncpg.Pool:
    # Async so FastAPI resolves it on the request task, where the ContextVar is bound.
    return current_pool()


class DatabaseMiddleware:
    def __init__(self, app: ASGIApp, provider: ConnectionProvider) -> None:
        self.app = app
        self.provider = provider

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        try:
            pool = self.provider.get_pool()
        except ConnectError as exc:
            logger.error("db_middleware_failed path=%s error=%s", scope.get("path"), exc)
            await error_response(exc)(scope, receive, send)
            return

        with bind_pool(pool):
            await self.app(scope, receive, send)
