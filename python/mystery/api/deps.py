"""FastAPI dependencies for route handlers.

Common dependencies like database sessions, outbound clients and the
internal-caller guard.
"""

import hmac

from fastapi import Request

from mystery.config import get_settings
from mystery.db.session import get_db, get_session_factory
from mystery.errors import ApiError, ApiErrorCode, ForbiddenError
from mystery.logging import get_logger
from mystery.services.email import EmailClient, get_email_client
from mystery.services.generation_client import GenerationClientBase, get_generation_client
from mystery.services.notifier import StatusNotifierBase, get_status_notifier

logger = get_logger(__name__)

INTERNAL_HEADER = "x-mystery-internal"

__all__ = [
    "get_db",
    "get_session_factory",
    "get_generation_client_dep",
    "get_email_client_dep",
    "get_notifier",
    "require_internal_caller",
]


def get_generation_client_dep(request: Request) -> GenerationClientBase:
    """Get the generation client created at app startup."""
    client = getattr(request.app.state, "generation_client", None)
    return client if client is not None else get_generation_client()


def get_email_client_dep(request: Request) -> EmailClient | None:
    """Email client on the app's shared httpx.AsyncClient (None if unconfigured)."""
    return get_email_client(getattr(request.app.state, "httpx_client", None))


def get_notifier() -> StatusNotifierBase:
    """Get the global status change channel."""
    return get_status_notifier()


def require_internal_caller(request: Request) -> None:
    """Guard for callback routes used by the generation service.

    In staging and prod the X-Mystery-Internal header must match
    MYSTERY_INTERNAL_SECRET (constant-time comparison). Local and test
    environments accept any caller.

    Raises:
        ForbiddenError(E_INTERNAL_ONLY): If the header is missing or wrong.
    """
    settings = get_settings()
    if not settings.requires_internal_header:
        return

    header_value = request.headers.get(INTERNAL_HEADER)
    if header_value is None:
        logger.warning("internal_auth_failure", reason="header_missing", path=request.url.path)
        raise ForbiddenError(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required")

    if not settings.mystery_internal_secret:
        # Validated at startup in staging/prod
        logger.error("internal_secret_not_configured")
        raise ApiError(ApiErrorCode.E_INTERNAL, "Internal server error")

    if not hmac.compare_digest(header_value.encode(), settings.mystery_internal_secret.encode()):
        logger.warning("internal_auth_failure", reason="header_mismatch", path=request.url.path)
        raise ForbiddenError(ApiErrorCode.E_INTERNAL_ONLY, "Internal API access required")
