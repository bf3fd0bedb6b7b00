"""
User persistence (raw SQL, read-only).
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import asyncpg

# Order is whatever the table's storage yields; callers must not rely on it.
LIST_USERS_SQL = "SELECT * FROM users"


async def stream_users(pool: asyncpg.Pool, *, prefetch: int = 100) -> AsyncIterator[asyncpg.Record]:
    """
    Yield user rows through a server-side cursor.

    asyncpg cursors only live inside a transaction, so the connection and the
    transaction are held until the generator is exhausted or closed. Always
    consume it under `contextlib.aclosing` so an early exit releases both.
    """
    async with pool.acquire() as conn:
        async with conn.transaction(readonly=True):
            async for record in conn.cursor(LIST_USERS_SQL, prefetch=prefetch):
                yield record
