"""
Main command API router.
"""

from fastapi import APIRouter, Depends

from .routes import auth_router, events_router, sync_router
from .security import require_command_secret


def create_command_router() -> APIRouter:
    """Create the command API router.

    Returns:
        Router with every command endpoint under ``/api/v1``, all of
        them requiring the command secret
    """
    router = APIRouter(
        prefix="/api/v1",
        dependencies=[Depends(require_command_secret)],
    )

    router.include_router(auth_router, prefix="/auth", tags=["Authentication"])
    router.include_router(sync_router, prefix="/sync", tags=["Calendar Sync"])
    router.include_router(events_router, prefix="/events", tags=["Events"])

    return router
