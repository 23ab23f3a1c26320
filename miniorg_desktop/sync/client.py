"""
HTTP client for the remote calendar sync endpoint.
"""

import logging
from typing import Optional

import httpx

from ..exceptions import SyncError

logger = logging.getLogger(__name__)

SYNC_ENDPOINT = "/api/calendar-sync"
UNKNOWN_ERROR = "Unknown error"


class CalendarSyncClient:
    """Calls ``POST <api_url>/api/calendar-sync`` with a bearer token."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, timeout: float = 60.0):
        """Initialize sync client.

        Args:
            http_client: Optional preconfigured client (shared or for tests)
            timeout: Request timeout in seconds for the default client
        """
        self._http_client = http_client
        self._owns_client = http_client is None
        self.timeout = timeout

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    async def close(self):
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def sync_calendar(self, api_url: str, auth_token: str) -> None:
        """Ask the remote API to sync the user's calendars.

        Args:
            api_url: Remote API base URL
            auth_token: Bearer credential

        Raises:
            SyncError: Network failure or non-success response
        """
        client = await self._get_http_client()
        url = f"{api_url.rstrip('/')}{SYNC_ENDPOINT}"

        try:
            response = await client.post(
                url,
                headers={
                    "Authorization": f"Bearer {auth_token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Calendar sync request to {url} failed: {e!r}")
            raise SyncError(str(e) or type(e).__name__, context={"url": url}) from e

        if response.is_success:
            return

        if response.status_code in (401, 403):
            logger.warning(f"Calendar sync rejected credential (HTTP {response.status_code})")
        else:
            logger.error(f"Calendar sync returned HTTP {response.status_code}")

        detail = response.text.strip() or UNKNOWN_ERROR
        raise SyncError(
            f"Sync failed: {detail}",
            context={"status_code": response.status_code},
        )
