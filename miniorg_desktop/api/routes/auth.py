"""
Authentication routes for the command API.
"""

import logging

from fastapi import APIRouter, Depends

from ...auth.deep_link import handle_deep_link
from ...exceptions import CallbackListenerError, CredentialStorageError
from ..context import CommandContext, get_context
from ..models import (
    AuthorizeResponse,
    DeepLinkRequest,
    DeepLinkResponse,
    ErrorResponse,
    SetTokenRequest,
    SuccessResponse,
    TokenResponse,
    ValidateStateRequest,
    ValidateStateResponse,
)
from ..errors import api_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/authorize",
    response_model=AuthorizeResponse,
    summary="Start a desktop OAuth attempt",
    description="Starts a loopback redirect listener and returns its redirect URI.",
    responses={
        500: {"model": ErrorResponse, "description": "Listener could not bind"},
    },
)
async def authorize(ctx: CommandContext = Depends(get_context)):
    """Start the loopback listener for one browser redirect."""
    try:
        request = await ctx.auth_flow.start_authorization()
    except CallbackListenerError as e:
        logger.error(f"Failed to start OAuth listener: {e.to_log_string()}")
        raise api_error(500, e)

    return AuthorizeResponse(
        redirect_uri=request.redirect_uri,
        state=request.state,
        authorization_url=request.authorization_url,
    )


@router.get(
    "/token",
    response_model=TokenResponse,
    summary="Get the stored credential",
    responses={
        500: {"model": ErrorResponse, "description": "Credential storage error"},
    },
)
async def get_token(ctx: CommandContext = Depends(get_context)):
    """Return the current credential, or null when logged out."""
    try:
        token = await ctx.credentials.get()
    except CredentialStorageError as e:
        logger.error(f"Failed to read credential: {e.to_log_string()}")
        raise api_error(500, e)

    return TokenResponse(token=token)


@router.put(
    "/token",
    response_model=TokenResponse,
    summary="Replace the stored credential",
    responses={
        500: {"model": ErrorResponse, "description": "Credential storage error"},
    },
)
async def set_token(body: SetTokenRequest, ctx: CommandContext = Depends(get_context)):
    """Persist a new credential."""
    try:
        token = await ctx.credentials.set(body.token, body.expires_at)
    except CredentialStorageError as e:
        logger.error(f"Failed to store credential: {e.to_log_string()}")
        raise api_error(500, e)

    return TokenResponse(token=token)


@router.delete(
    "/token",
    response_model=SuccessResponse,
    summary="Log out",
    responses={
        500: {"model": ErrorResponse, "description": "Credential storage error"},
    },
)
async def clear_token(ctx: CommandContext = Depends(get_context)):
    """Delete the stored credential and stop periodic sync.

    Succeeds when already logged out.
    """
    try:
        await ctx.credentials.clear()
    except CredentialStorageError as e:
        logger.error(f"Failed to clear credential: {e.to_log_string()}")
        raise api_error(500, e)

    ctx.sync.stop_background_loop()

    return SuccessResponse(message="Logged out")


@router.post(
    "/deep-link",
    response_model=DeepLinkResponse,
    summary="Forward an OS deep link",
    description="Parses an OAuth callback deep link and publishes the outcome as an event.",
)
async def deep_link(body: DeepLinkRequest, ctx: CommandContext = Depends(get_context)):
    """Deliver a deep-link OAuth callback."""
    result = handle_deep_link(ctx.bus, body.url)
    if result is None:
        return DeepLinkResponse(handled=False)

    if result.is_success:
        return DeepLinkResponse(
            handled=True,
            code=result.payload.code,
            state=result.payload.state,
        )
    return DeepLinkResponse(handled=True, error=result.error)


@router.post(
    "/validate-state",
    response_model=ValidateStateResponse,
    summary="Check an OAuth state",
    description="Consumes a state issued by /authorize. A state validates at most once.",
)
async def validate_state(body: ValidateStateRequest, ctx: CommandContext = Depends(get_context)):
    """Validate the state from a callback before exchanging its code."""
    # Read before validating; validation consumes the state
    redirect_uri = ctx.auth_flow.redirect_uri_for(body.state)
    if not ctx.auth_flow.validate_state(body.state):
        logger.warning("OAuth callback carried an unknown or expired state")
        return ValidateStateResponse(valid=False)

    return ValidateStateResponse(valid=True, redirect_uri=redirect_uri)
