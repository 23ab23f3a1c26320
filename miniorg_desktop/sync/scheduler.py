"""
Background calendar sync using APScheduler.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import DEFAULT_SYNC_INTERVAL_SECONDS
from ..exceptions import MiniOrgError, SyncError, SyncInProgressError
from .client import CalendarSyncClient
from .models import SyncStatus

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "calendar-sync"

TokenProvider = Callable[[], Awaitable[Optional[str]]]


def _utc_now_rfc3339() -> str:
    return datetime.now(timezone.utc).isoformat()


class SyncScheduler:
    """Runs calendar syncs periodically and on demand.

    At most one attempt is in flight at a time. The admission check and the
    ``is_syncing`` flag are updated in one lock acquisition; the lock is never
    held across the outbound request.
    """

    def __init__(self,
                 client: CalendarSyncClient,
                 interval_seconds: int = DEFAULT_SYNC_INTERVAL_SECONDS,
                 scheduler: Optional[AsyncIOScheduler] = None,
                 token_provider: Optional[TokenProvider] = None):
        """Initialize sync scheduler.

        Args:
            client: Client performing the outbound sync call
            interval_seconds: Cadence of the periodic loop
            scheduler: Optional APScheduler instance (created on first start)
            token_provider: Returns the current bearer token, or None when
                logged out; read on every periodic tick
        """
        self.client = client
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler
        self.token_provider = token_provider

        self._status = SyncStatus()
        self._lock = asyncio.Lock()
        self._job_id: Optional[str] = None
        self._api_url: Optional[str] = None
        self._auth_token: Optional[str] = None

    @property
    def is_running(self) -> bool:
        """Whether the periodic loop is active."""
        return self._job_id is not None

    def start_background_loop(self, api_url: str, auth_token: str) -> str:
        """Start the periodic sync loop.

        The first attempt runs immediately, then every ``interval_seconds``.
        Calling again while the loop runs keeps the job and retargets later
        ticks. Must be called from within the running event loop.

        Args:
            api_url: Remote API base URL
            auth_token: Bearer credential, used when no token provider is set

        Returns:
            Scheduler job ID
        """
        self._api_url = api_url
        self._auth_token = auth_token

        if self._job_id is not None:
            logger.info("Calendar sync loop already running; updated its target")
            return self._job_id

        if self.scheduler is None:
            self.scheduler = AsyncIOScheduler(timezone="UTC")
        if not self.scheduler.running:
            self.scheduler.start()

        self.scheduler.add_job(
            func=self._periodic_sync,
            trigger=IntervalTrigger(seconds=self.interval_seconds, timezone="UTC"),
            id=SYNC_JOB_ID,
            name="Calendar sync",
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc),
            max_instances=1,
            coalesce=True,  # Run once if several ticks were missed
        )
        self._job_id = SYNC_JOB_ID

        logger.info(f"Calendar sync loop started (every {self.interval_seconds}s)")
        return self._job_id

    def stop_background_loop(self) -> None:
        """Remove the periodic job and forget its credential."""
        if self._job_id is not None and self.scheduler is not None:
            try:
                self.scheduler.remove_job(self._job_id)
            except JobLookupError:
                pass
            logger.info("Calendar sync loop stopped")
        self._job_id = None
        self._api_url = None
        self._auth_token = None

    async def trigger_manual_sync(self, api_url: str, auth_token: str) -> None:
        """Run one sync attempt now.

        Raises:
            SyncInProgressError: Another attempt is running (nothing is queued)
            SyncError: The attempt failed
        """
        if not await self._begin_attempt():
            raise SyncInProgressError()

        await self._run_attempt(api_url, auth_token)

    async def get_status(self) -> SyncStatus:
        """Snapshot of the current sync status."""
        async with self._lock:
            return self._status.model_copy()

    def stop(self) -> None:
        """Stop the periodic loop and shut the scheduler down."""
        self.stop_background_loop()

        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    async def _current_token(self) -> Optional[str]:
        """Token for this tick; the provider wins when configured."""
        if self.token_provider is None:
            return self._auth_token

        try:
            return await self.token_provider()
        except MiniOrgError as e:
            logger.error(f"Cannot read credential for scheduled sync: {e.to_log_string()}")
            return None

    async def _periodic_sync(self) -> None:
        """Interval job body; failures are recorded and the loop continues."""
        api_url = self._api_url
        auth_token = await self._current_token()
        if api_url is None or not auth_token:
            logger.info("Skipping scheduled calendar sync: not logged in")
            return

        if not await self._begin_attempt():
            logger.info("Skipping scheduled calendar sync: another sync is running")
            return

        try:
            await self._run_attempt(api_url, auth_token)
        except SyncError as e:
            logger.warning(f"Scheduled calendar sync failed: {e}")

    async def _begin_attempt(self) -> bool:
        """Claim the single attempt slot.

        Returns:
            False if an attempt is already running
        """
        async with self._lock:
            if self._status.is_syncing:
                return False
            self._status.is_syncing = True
            self._status.error = None
            return True

    async def _run_attempt(self, api_url: str, auth_token: str) -> None:
        """Perform the outbound call and record its outcome."""
        logger.info("Starting calendar sync")
        try:
            await self.client.sync_calendar(api_url, auth_token)
        except SyncError as e:
            async with self._lock:
                self._status.is_syncing = False
                self._status.error = str(e)
            logger.error(f"Calendar sync failed: {e}")
            raise
        except BaseException as e:
            # Release the slot on anything unexpected, including cancellation
            async with self._lock:
                self._status.is_syncing = False
                self._status.error = str(e) or type(e).__name__
            raise

        async with self._lock:
            self._status.is_syncing = False
            self._status.last_sync = _utc_now_rfc3339()
        logger.info("Calendar sync completed")
