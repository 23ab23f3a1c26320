"""
Components the command API operates on.
"""

from dataclasses import dataclass

from fastapi import Request

from ..auth.credential_store import CredentialStore
from ..auth.flow import AuthorizationFlow
from ..config.settings import AppConfig
from ..events import EventBus
from ..sync.scheduler import SyncScheduler


@dataclass
class CommandContext:
    """Owned component references handed to the route handlers."""
    config: AppConfig
    bus: EventBus
    credentials: CredentialStore
    auth_flow: AuthorizationFlow
    sync: SyncScheduler
    command_secret: str


def get_context(request: Request) -> CommandContext:
    """FastAPI dependency returning the application's command context."""
    return request.app.state.context
