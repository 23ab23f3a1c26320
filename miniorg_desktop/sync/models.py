"""
Calendar sync status model.
"""

from typing import Optional

from pydantic import BaseModel


class SyncStatus(BaseModel):
    """Progress of the background calendar sync."""
    is_syncing: bool = False
    last_sync: Optional[str] = None
    error: Optional[str] = None
