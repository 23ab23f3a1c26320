"""
Desktop OAuth and credential storage.

Provides the loopback redirect listener, the deep-link adapter and the
two-tier credential store backed by the OS keyring or an encrypted file.
"""

from .models import AuthToken, OAuthCallbackPayload, CallbackResult
from .callback import INVALID_CALLBACK_ERROR, parse_callback_url, parse_request_line
from .backends import (
    SecretBackend,
    KeyringBackend,
    EncryptedFileBackend,
    create_secret_backend,
)
from .credential_store import CredentialStore
from .loopback import LoopbackListener, ListenerState
from .deep_link import handle_deep_link
from .flow import AuthorizationFlow, AuthorizationRequest

__all__ = [
    # Models
    "AuthToken",
    "OAuthCallbackPayload",
    "CallbackResult",
    # Callback parsing
    "INVALID_CALLBACK_ERROR",
    "parse_callback_url",
    "parse_request_line",
    # Storage
    "SecretBackend",
    "KeyringBackend",
    "EncryptedFileBackend",
    "create_secret_backend",
    "CredentialStore",
    # Delivery paths
    "LoopbackListener",
    "ListenerState",
    "handle_deep_link",
    # Flow
    "AuthorizationFlow",
    "AuthorizationRequest",
]
