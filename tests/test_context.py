from __future__ import annotations

import asyncio

import pytest

from conftest import FakeConnection, make_pool
from core import context
from core.errors import MissingConnectionError


def test_current_pool_fails_when_nothing_is_bound():
    with pytest.raises(MissingConnectionError):
        context.current_pool()


def test_current_pool_rejects_a_mistyped_value():
    with context.bind_pool("postgresql://not-a-pool"):
        with pytest.raises(MissingConnectionError, match="unexpected type str"):
            context.current_pool()


def test_bind_pool_is_scoped_to_the_block():
    pool = make_pool(FakeConnection())

    with context.bind_pool(pool):
        assert context.current_pool() is pool

    with pytest.raises(MissingConnectionError):
        context.current_pool()


def test_concurrent_tasks_see_their_own_binding():
    first = make_pool(FakeConnection())
    second = make_pool(FakeConnection())

    async def read_back(pool):
        with context.bind_pool(pool):
            await asyncio.sleep(0)
            return context.current_pool()

    async def run():
        return await asyncio.gather(read_back(first), read_back(second))

    assert asyncio.run(run()) == [first, second]


def test_middleware_passes_non_http_scopes_through():
    seen = []

    async def app(scope, receive, send):
        seen.append(scope["type"])

    class ExplodingProvider:
        def get_pool(self):
            raise AssertionError("provider must not be consulted")

    middleware = context.DatabaseMiddleware(app, provider=ExplodingProvider())
    asyncio.run(middleware({"type": "lifespan"}, None, None))

    assert seen == ["lifespan"]
