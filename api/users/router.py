"""
User API endpoints.
"""

from __future__ import annotations

import logging

import asyncpg
from fastapi import APIRouter, Depends, Request, Response

from core import context
from core.settings import Settings

from . import schemas, service

logger = logging.getLogger(__name__)

router = APIRouter()


def _query_timeout_s(request: Request) -> float:
    settings = getattr(request.app.state, "settings", None) or Settings()
    return settings.query_timeout_s


@router.get(
    "/api/users",
    response_model=list[schemas.UserResponse],
    responses={500: {"content": {"text/plain": {}}, "description": "Database failure"}},
)
async def list_users(
    request: Request,
    pool: asyncpg.Pool = Depends(context.get_pool),
) -> Response:
    logger.info("list_users_requested")
    users = await service.list_users(pool, timeout_s=_query_timeout_s(request))
    body = service.encode_users(users)
    logger.info("list_users count=%s", len(users))
    return Response(content=body, media_type="application/json")
