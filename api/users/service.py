"""
User listing logic.

Rows are decoded one at a time as the cursor produces them. Any failure
(driver error, undecodable row, deadline) discards what was collected so far;
the caller only ever sees a complete list or an exception.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from contextlib import aclosing
from typing import Any

import asyncpg
from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from core.errors import DecodeError, EncodeError, QueryError, QueryTimeoutError

from . import repository, schemas

_users_adapter = TypeAdapter(list[schemas.UserResponse])


def decode_user(record: Mapping[str, Any]) -> schemas.UserResponse:
    try:
        return schemas.UserResponse.model_validate(dict(record))
    except (ValidationError, TypeError, ValueError) as exc:
        raise DecodeError(f"Could not decode user row: {exc}") from exc


async def _collect_users(pool: asyncpg.Pool) -> list[schemas.UserResponse]:
    users: list[schemas.UserResponse] = []
    try:
        async with aclosing(repository.stream_users(pool)) as records:
            async for record in records:
                users.append(decode_user(record))
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
        raise QueryError(f"Users query failed: {exc}") from exc
    return users


async def list_users(pool: asyncpg.Pool, *, timeout_s: float | None = None) -> list[schemas.UserResponse]:
    try:
        return await asyncio.wait_for(_collect_users(pool), timeout=timeout_s)
    except asyncio.TimeoutError as exc:
        raise QueryTimeoutError(f"Users query exceeded {timeout_s}s.") from exc


def encode_users(users: list[schemas.UserResponse]) -> bytes:
    try:
        return _users_adapter.dump_json(users)
    except (PydanticSerializationError, ValueError) as exc:
        raise EncodeError(f"failed to marshal response: {exc}") from exc
