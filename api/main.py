from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Sequence

import asyncpg
import uvicorn
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core import context
from core.db import ConnectionProvider, database_url
from core.errors import ConnectError, HealthCheckError, install_exception_handlers
from core.log import configure_logging
from core.settings import Settings
from users import router as users_router

logger = logging.getLogger("main")


def create_app(
    provider: ConnectionProvider | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """
    Build the API. A provider passed in is borrowed and never closed here;
    without one, the lifespan builds it from DATABASE_URL and owns it.
    """
    settings = settings or Settings.from_env()
    owns_provider = provider is None
    if provider is None:
        provider = ConnectionProvider(
            None,
            min_size=settings.pool_min_size,
            max_size=settings.pool_max_size,
            command_timeout=settings.command_timeout_s,
        )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if not owns_provider:
            yield
            return
        # Initialize the DB pool once per process.
        try:
            await provider.open()
        except ConnectError:
            logger.critical("startup_failed reason=database_unavailable", exc_info=True)
            raise
        try:
            yield
        finally:
            await provider.close()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.provider = provider

    install_exception_handlers(app)

    # Added first so CORS wraps it and error responses still carry CORS headers.
    app.add_middleware(context.DatabaseMiddleware, provider=provider)
    # Permissive by default: any origin may read this API.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_allow_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "HEAD"],
        allow_headers=["*"],
    )

    app.include_router(users_router.router, tags=["users"])

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/health/db")
    async def health_db(pool: asyncpg.Pool = Depends(context.get_pool)) -> dict:
        try:
            await pool.fetchval("SELECT 1")
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as exc:
            raise HealthCheckError(f"SELECT 1 failed: {exc}") from exc
        return {"status": "ok"}

    return app


def _parse_args(argv: Sequence[str] | None, settings: Settings | None = None) -> argparse.Namespace:
    settings = settings or Settings.from_env()
    parser = argparse.ArgumentParser(description="Users API server")
    parser.add_argument("--host", default=settings.host, help="Bind address (default: %(default)s)")
    parser.add_argument("--port", type=int, default=settings.port, help="Bind port (default: %(default)s)")
    return parser.parse_args(argv)


async def _serve(settings: Settings, *, host: str, port: int) -> None:
    # The pool must exist before the listener binds; ConnectError aborts startup.
    provider = await ConnectionProvider.connect(
        database_url(),
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        command_timeout=settings.command_timeout_s,
    )
    try:
        app = create_app(provider=provider, settings=settings)
        logger.info("Starting server on %s:%s", host, port)
        server = uvicorn.Server(
            uvicorn.Config(app, host=host, port=port, log_level=settings.log_level.lower())
        )
        await server.serve()
    finally:
        await provider.close()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    settings = Settings.from_env()
    args = _parse_args(argv, settings)
    configure_logging(settings.log_level)

    try:
        asyncio.run(_serve(settings, host=args.host, port=args.port))
    except ConnectError as exc:
        logger.critical("startup_failed error=%s", exc)
        return 1
    return 0


app = create_app()


if __name__ == "__main__":
    sys.exit(main())
