"""
Desktop OAuth authorization flow.

Starts a loopback listener per attempt, builds the Google authorization URL
around its redirect URI and tracks one-time ``state`` values. Opening the URL
in the browser and exchanging the code are left to the GUI shell.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from urllib.parse import urlencode

from ..config.settings import OAuthConfig
from ..events import EventBus
from .loopback import LoopbackListener

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
SCOPES = [
    "openid",
    "email",
    "profile",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events",
]


@dataclass
class PendingState:
    """OAuth state for CSRF protection."""
    state_token: str
    redirect_uri: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_expired(self) -> bool:
        """State tokens expire after 10 minutes."""
        return datetime.now(timezone.utc) > (self.created_at + timedelta(minutes=10))


@dataclass
class AuthorizationRequest:
    """Everything the GUI shell needs to send the user to the browser."""
    redirect_uri: str
    state: str
    authorization_url: Optional[str] = None


class AuthorizationFlow:
    """Handles loopback-redirect OAuth attempts."""

    def __init__(self, bus: EventBus, config: Optional[OAuthConfig] = None):
        """
        Initialize OAuth flow.

        Args:
            bus: Channel listeners deliver callbacks on
            config: OAuth client settings
        """
        self.bus = bus
        self.config = config or OAuthConfig()
        self._pending_states: Dict[str, PendingState] = {}
        self._listeners: List[LoopbackListener] = []

    def is_configured(self) -> bool:
        """Check if a desktop client id is available."""
        return bool(self.config.client_id)

    @property
    def active_listeners(self) -> List[LoopbackListener]:
        return [l for l in self._listeners if not l.done]

    async def start_authorization(self) -> AuthorizationRequest:
        """
        Start a loopback listener and prepare the authorization request.

        Returns:
            Redirect URI, state token and, when configured, the full URL
        """
        self._listeners = self.active_listeners

        listener = LoopbackListener(self.bus, accept_timeout=self.config.callback_timeout)
        redirect_uri = await listener.start()
        self._listeners.append(listener)

        state_token = secrets.token_urlsafe(32)
        self._pending_states[state_token] = PendingState(
            state_token=state_token,
            redirect_uri=redirect_uri,
        )
        self._cleanup_expired_states()

        auth_url = None
        if self.is_configured():
            auth_url = self.build_authorization_url(redirect_uri, state_token)
        else:
            logger.warning(
                "GOOGLE_CLIENT_ID_DESKTOP not set; returning redirect URI only"
            )

        return AuthorizationRequest(
            redirect_uri=redirect_uri,
            state=state_token,
            authorization_url=auth_url,
        )

    def build_authorization_url(self, redirect_uri: str, state: Optional[str] = None) -> str:
        """Build the Google authorization URL for a redirect URI."""
        params = {
            "client_id": self.config.client_id or "",
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",  # Get refresh token
            "prompt": "consent",
        }
        if state:
            params["state"] = state

        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    def validate_state(self, state_token: Optional[str]) -> bool:
        """
        Validate and consume a state token from a callback.

        Args:
            state_token: State echoed by the authorization server

        Returns:
            True if the state was issued by this flow and is still fresh
        """
        if not state_token:
            return False

        state = self._pending_states.pop(state_token, None)
        if not state:
            return False

        return not state.is_expired()

    def redirect_uri_for(self, state_token: str) -> Optional[str]:
        """Redirect URI used for a pending state (needed for code exchange)."""
        state = self._pending_states.get(state_token)
        return state.redirect_uri if state else None

    async def shutdown(self) -> None:
        """Abandon every listener still waiting for a redirect."""
        for listener in self._listeners:
            listener.abandon()
        self._listeners.clear()
        self._pending_states.clear()

    def _cleanup_expired_states(self) -> None:
        """Remove expired state tokens."""
        expired = [
            token for token, state in self._pending_states.items()
            if state.is_expired()
        ]
        for token in expired:
            del self._pending_states[token]
