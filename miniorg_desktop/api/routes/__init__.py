"""
Command API route modules.
"""

from .auth import router as auth_router
from .sync import router as sync_router
from .events import router as events_router

__all__ = [
    "auth_router",
    "sync_router",
    "events_router",
]
