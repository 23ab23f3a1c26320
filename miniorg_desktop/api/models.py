"""
Command API request and response schemas.
"""

from typing import Optional

from pydantic import BaseModel, Field

from ..auth.models import AuthToken
from ..sync.models import SyncStatus


# ============================================================================
# Auth
# ============================================================================

class AuthorizeResponse(BaseModel):
    """Response for starting an OAuth attempt."""
    redirect_uri: str
    state: str
    authorization_url: Optional[str] = None


class TokenResponse(BaseModel):
    """Current credential, or null when logged out."""
    token: Optional[AuthToken] = None


class SetTokenRequest(BaseModel):
    """Request to replace the stored credential."""
    token: str = Field(..., min_length=1)
    expires_at: Optional[int] = None


class DeepLinkRequest(BaseModel):
    """URL the OS handed to the application."""
    url: str


class DeepLinkResponse(BaseModel):
    """Outcome of forwarding a deep link."""
    handled: bool
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None


class ValidateStateRequest(BaseModel):
    """State echoed back by the authorization server."""
    state: str


class ValidateStateResponse(BaseModel):
    """Whether a state was issued here, with the redirect URI for code exchange."""
    valid: bool
    redirect_uri: Optional[str] = None


# ============================================================================
# Sync
# ============================================================================

class SyncRequest(BaseModel):
    """Sync target; omitted fields fall back to configuration and the stored credential."""
    api_url: Optional[str] = None
    auth_token: Optional[str] = None


class SyncTriggerResponse(BaseModel):
    """Status after a manual sync completed."""
    success: bool
    status: SyncStatus


class SyncServiceResponse(BaseModel):
    """Periodic sync loop handle."""
    job_id: str
    running: bool
    interval_seconds: int


# ============================================================================
# Common
# ============================================================================

class SuccessResponse(BaseModel):
    """Generic acknowledgement."""
    success: bool = True
    message: Optional[str] = None


class ErrorDetail(BaseModel):
    """Error detail."""
    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response."""
    detail: ErrorDetail
