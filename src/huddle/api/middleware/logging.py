"""Request-scoped structured logging.

Each request gets a request id (echoed back as X-Request-ID, or reused
from the caller's header) that is bound into structlog's contextvars
together with the actor id, so every event logged while the request is
handled (engine, pipeline, repositories) carries the same correlation
fields. One ``request_completed`` event is emitted per request with the
status code and wall time.
"""

from __future__ import annotations

import logging
import time
import uuid

import structlog
from fastapi import Request, Response
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from src.huddle.config import Environment, get_settings

REQUEST_ID_HEADER = "X-Request-ID"

logger = structlog.get_logger(__name__)


def configure_structlog() -> None:
    """Route structlog through stdlib logging; JSON in production, console otherwise."""
    settings = get_settings()
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.ENVIRONMENT == Environment.production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _token_subject(request: Request) -> str | None:
    """Subject claim of a valid Bearer token, else None.

    Authentication itself happens in the route dependency; a bad token
    only means the log line has no actor.
    """
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Bearer" or not token:
        return None
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None
    return claims.get("sub")


def _level_for(status_code: int) -> str:
    if status_code >= 500:
        return "error"
    if status_code >= 400:
        return "warning"
    return "info"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Binds request_id/actor_id for the request and logs its outcome."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            actor_id=_token_subject(request),
        )
        started = time.perf_counter()

        def elapsed_ms() -> float:
            return round((time.perf_counter() - started) * 1000, 2)

        try:
            try:
                response = await call_next(request)
            except Exception:
                logger.exception(
                    "request_failed",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=elapsed_ms(),
                )
                raise

            response.headers[REQUEST_ID_HEADER] = request_id
            getattr(logger, _level_for(response.status_code))(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=elapsed_ms(),
            )
            return response
        finally:
            structlog.contextvars.unbind_contextvars("request_id", "actor_id")
