"""
Command secret check for the command API.

The GUI shell receives a secret when it launches the desktop core and sends it
with every request. Routes are reachable only with that secret.
"""

import logging
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .context import CommandContext, get_context

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)

# Hosts the command API answers to; anything else is a rebinding attempt
ALLOWED_HOSTS = ["127.0.0.1", "localhost"]


def generate_command_secret() -> str:
    """Create a fresh per-launch command secret."""
    return secrets.token_urlsafe(32)


async def require_command_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    token: Optional[str] = Query(
        None, description="Command secret for clients that cannot set headers (EventSource)"
    ),
    ctx: CommandContext = Depends(get_context),
) -> None:
    """FastAPI dependency rejecting requests without the command secret.

    Raises:
        HTTPException: If the secret is missing or wrong
    """
    presented = credentials.credentials if credentials else token
    if not presented:
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "Not authenticated"},
        )

    if not secrets.compare_digest(presented.encode(), ctx.command_secret.encode()):
        logger.warning("Rejected command API request with an invalid secret")
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "Invalid command secret"},
        )
