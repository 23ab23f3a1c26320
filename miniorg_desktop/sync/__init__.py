"""
Calendar sync against the remote MiniOrg API.
"""

from .models import SyncStatus
from .client import CalendarSyncClient
from .scheduler import SyncScheduler

__all__ = [
    "SyncStatus",
    "CalendarSyncClient",
    "SyncScheduler",
]
