"""
Calendar sync routes for the command API.
"""

import logging
from typing import Optional, Tuple

from fastapi import APIRouter, Depends

from ...exceptions import CredentialStorageError, MiniOrgError, SyncError, SyncInProgressError
from ...sync.models import SyncStatus
from ..context import CommandContext, get_context
from ..models import (
    ErrorResponse,
    SyncRequest,
    SyncServiceResponse,
    SyncTriggerResponse,
)
from ..errors import api_error

logger = logging.getLogger(__name__)

router = APIRouter()


async def _resolve_target(ctx: CommandContext, body: Optional[SyncRequest]) -> Tuple[str, str]:
    """Fill in the API URL and bearer token from configuration and the credential store."""
    body = body or SyncRequest()
    api_url = body.api_url or ctx.config.api_url

    if body.auth_token:
        return api_url, body.auth_token

    try:
        stored = await ctx.credentials.get()
    except CredentialStorageError as e:
        logger.error(f"Failed to read credential for sync: {e.to_log_string()}")
        raise api_error(500, e)

    if stored is None:
        raise api_error(
            401,
            MiniOrgError("Not logged in", error_code="NOT_AUTHENTICATED"),
        )

    return api_url, stored.token


@router.post(
    "/trigger",
    response_model=SyncTriggerResponse,
    summary="Run a calendar sync now",
    responses={
        401: {"model": ErrorResponse, "description": "No stored credential"},
        409: {"model": ErrorResponse, "description": "Sync already in progress"},
        502: {"model": ErrorResponse, "description": "Remote sync failed"},
    },
)
async def trigger_sync(
    body: Optional[SyncRequest] = None,
    ctx: CommandContext = Depends(get_context),
):
    """Run one sync attempt and wait for it to finish."""
    api_url, auth_token = await _resolve_target(ctx, body)

    try:
        await ctx.sync.trigger_manual_sync(api_url, auth_token)
    except SyncInProgressError as e:
        raise api_error(409, e)
    except SyncError as e:
        raise api_error(502, e)

    return SyncTriggerResponse(success=True, status=await ctx.sync.get_status())


@router.get(
    "/status",
    response_model=SyncStatus,
    summary="Get calendar sync status",
)
async def get_sync_status(ctx: CommandContext = Depends(get_context)):
    """Return a snapshot of the sync status."""
    return await ctx.sync.get_status()


@router.post(
    "/service",
    response_model=SyncServiceResponse,
    summary="Start the periodic sync loop",
    description="Starts the background loop; a second call returns the running loop.",
    responses={
        401: {"model": ErrorResponse, "description": "No stored credential"},
    },
)
async def start_sync_service(
    body: Optional[SyncRequest] = None,
    ctx: CommandContext = Depends(get_context),
):
    """Start periodic calendar sync."""
    api_url, auth_token = await _resolve_target(ctx, body)
    job_id = ctx.sync.start_background_loop(api_url, auth_token)

    return SyncServiceResponse(
        job_id=job_id,
        running=ctx.sync.is_running,
        interval_seconds=ctx.sync.interval_seconds,
    )
