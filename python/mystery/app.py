"""FastAPI application creation and configuration.

This module creates and configures the FastAPI application instance.
It registers exception handlers, request-id middleware, and routes.

Middleware Ordering (Critical):
- Middleware runs in reverse order of registration
- RequestIDMiddleware is added LAST so it runs FIRST (outermost)
- This ensures every response (including errors) gets X-Request-ID

Shared Resources (created in lifespan, stored in app.state):
- httpx.AsyncClient for outbound email calls (connection pooling)
- Redis client (when REDIS_URL is set) backing the status change channel
- Generation service client
"""

import json
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from mystery.api.routes import create_api_router
from mystery.config import get_settings
from mystery.errors import ApiError, ApiErrorCode
from mystery.logging import configure_logging, get_logger
from mystery.middleware.request_id import RequestIDMiddleware
from mystery.responses import (
    api_error_handler,
    error_response,
    http_exception_handler,
    unhandled_exception_handler,
)
from mystery.services.generation_client import GenerationClientBase, get_generation_client
from mystery.services.notifier import (
    InMemoryStatusNotifier,
    RedisStatusNotifier,
    StatusNotifierBase,
    set_status_notifier,
)

# Configure structured logging at import time
configure_logging()

logger = get_logger(__name__)


def create_status_notifier(redis_client) -> StatusNotifierBase:
    """Redis-backed change channel when Redis is available, in-memory otherwise."""
    settings = get_settings()
    if redis_client is not None and settings.redis_url:
        return RedisStatusNotifier(settings.redis_url, redis_client=redis_client)
    logger.warning("status_notifier_in_memory", reason="redis_unavailable")
    return InMemoryStatusNotifier()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle resources.

    - Creates shared httpx.AsyncClient for outbound email
    - Connects Redis and installs the status change channel
    - Cleans up on shutdown
    """
    settings = get_settings()

    app.state.httpx_client = httpx.AsyncClient(
        timeout=httpx.Timeout(30.0, connect=10.0),
        limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
    )

    redis_client = None
    if settings.redis_url:
        try:
            import redis

            redis_client = redis.Redis.from_url(
                settings.redis_url, decode_responses=True, socket_timeout=5
            )
            redis_client.ping()
            logger.info("redis_client_initialized", redis_url=settings.redis_url[:30] + "...")
        except Exception as e:
            logger.warning("redis_client_init_failed", error=str(e))
            redis_client = None

    app.state.redis_client = redis_client

    # Tests install their own channel before startup
    if not getattr(app.state, "notifier_preset", False):
        set_status_notifier(create_status_notifier(redis_client))

    if getattr(app.state, "generation_client", None) is None:
        app.state.generation_client = get_generation_client()

    yield

    # Shutdown: close HTTP client and Redis
    await app.state.httpx_client.aclose()
    if redis_client:
        try:
            redis_client.close()
        except Exception as e:
            logger.warning("redis_client_close_failed", error=str(e))
    logger.info("httpx_client_closed")


def create_app(
    generation_client: GenerationClientBase | None = None,
    notifier: StatusNotifierBase | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        generation_client: Optional generation client (for testing).
        notifier: Optional status change channel (for testing).

    Returns:
        Configured FastAPI application instance.
    """
    app = FastAPI(
        title="Mystery API",
        description="Backend API for the murder mystery party package generator",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.generation_client = generation_client
    if notifier is not None:
        set_status_notifier(notifier)
        app.state.notifier_preset = True

    # Register exception handlers
    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request validation errors (including malformed JSON)."""
        logger.info("request_validation_failed", errors=len(exc.errors()))
        return JSONResponse(
            status_code=400,
            content=error_response(ApiErrorCode.E_INVALID_REQUEST, "Invalid request body"),
        )

    # Handle JSON decode errors from malformed JSON bodies
    @app.middleware("http")
    async def catch_json_decode_errors(request: Request, call_next):
        """Catch JSON decode errors before they reach route handlers."""
        if request.method in ("POST", "PUT", "PATCH"):
            content_type = request.headers.get("content-type", "")
            if "application/json" in content_type:
                body = await request.body()
                if body:
                    try:
                        json.loads(body)
                    except json.JSONDecodeError:
                        return JSONResponse(
                            status_code=400,
                            content=error_response(
                                ApiErrorCode.E_INVALID_REQUEST, "Malformed JSON body"
                            ),
                        )
        return await call_next(request)

    # Use router factory to avoid import-time settings loading
    app.include_router(create_api_router())

    return app


def add_request_id_middleware(app: FastAPI, log_requests: bool = True) -> None:
    """Add request-id middleware to the app.

    This should be called AFTER all other middleware is added, so it runs FIRST.

    Args:
        app: The FastAPI application.
        log_requests: Whether to log access entries for each request.
    """
    app.add_middleware(RequestIDMiddleware, log_requests=log_requests)
    logger.info("request_id_middleware_enabled")
