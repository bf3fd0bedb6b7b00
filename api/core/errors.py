"""
Service error taxonomy and the FastAPI handler that renders it.

Every error ends the request with a single 500 `text/plain` response carrying
a fixed message. Internal detail (driver messages, tracebacks) only goes to
the server log.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import PlainTextResponse

logger = logging.getLogger(__name__)


class ServiceError(RuntimeError):
    public_message = "Internal server error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class ConnectError(ServiceError):
    public_message = "Could not establish a connection to the database"


# Raised when a route runs without the database middleware in front of it.
class MissingConnectionError(ServiceError):
    public_message = "Could not establish a connection to the database"


class QueryError(ServiceError):
    public_message = "Could not retrieve list of users from the db"


class QueryTimeoutError(QueryError):
    pass


class DecodeError(ServiceError):
    public_message = "Error parsing the users"


class EncodeError(ServiceError):
    public_message = "Could not encode the response"


class HealthCheckError(ServiceError):
    public_message = "Database health check failed"


def error_response(exc: ServiceError) -> PlainTextResponse:
    return PlainTextResponse(exc.public_message, status_code=exc.status_code)


async def _service_error_handler(request: Request, exc: Exception) -> PlainTextResponse:
    if not isinstance(exc, ServiceError):
        raise exc
    logger.error(
        "request_failed method=%s path=%s error=%s detail=%s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc,
        exc_info=exc.__cause__ or exc,
    )
    return error_response(exc)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, _service_error_handler)
