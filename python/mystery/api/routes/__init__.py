"""API route definitions.

Uses a factory pattern to avoid import-time settings loading.
This allows tests to import modules without requiring all environment
variables to be configured upfront.
"""

from fastapi import APIRouter

from mystery.api.routes.access import router as access_router
from mystery.api.routes.conversations import router as conversations_router
from mystery.api.routes.health import router as health_router
from mystery.api.routes.internal import router as internal_router
from mystery.api.routes.packages import router as packages_router
from mystery.api.routes.stream import router as stream_router


def create_api_router() -> APIRouter:
    """Create and configure the API router.

    Returns:
        Configured APIRouter with all routes registered.
    """
    api_router = APIRouter()
    api_router.include_router(health_router, tags=["health"])
    api_router.include_router(conversations_router, tags=["conversations"])
    api_router.include_router(packages_router, tags=["packages"])
    api_router.include_router(stream_router, tags=["streaming"])
    api_router.include_router(access_router, tags=["access"])
    api_router.include_router(internal_router, tags=["internal"])
    return api_router


__all__ = ["create_api_router"]
