"""
Exception hierarchy for the MiniOrg desktop core.

Every error carries a human readable message (what ``str()`` returns and what
crosses the command boundary) plus a stable error code for logs and API
responses.
"""

from typing import Any, Dict, Optional


class MiniOrgError(Exception):
    """Base exception for all desktop core errors."""

    default_code = "MINIORG_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize error.

        Args:
            message: Descriptive error message
            error_code: Stable machine readable code
            context: Extra details for logging
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = context or {}

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.error_code, "message": self.message}

    def to_log_string(self) -> str:
        """Format error for log output."""
        if self.context:
            details = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.error_code}] {self.message} ({details})"
        return f"[{self.error_code}] {self.message}"


class ConfigurationError(MiniOrgError):
    """Invalid or incomplete configuration."""

    default_code = "CONFIGURATION_ERROR"


class CredentialStorageError(MiniOrgError):
    """Durable secret storage is unavailable or failed."""

    default_code = "CREDENTIAL_STORAGE_ERROR"


class CredentialCorruptError(CredentialStorageError):
    """A stored credential exists but cannot be decoded."""

    default_code = "CREDENTIAL_CORRUPT"


class CallbackListenerError(MiniOrgError):
    """The loopback redirect listener could not be started."""

    default_code = "CALLBACK_LISTENER_ERROR"


class SyncError(MiniOrgError):
    """A calendar sync attempt failed."""

    default_code = "SYNC_FAILED"


class SyncInProgressError(SyncError):
    """A sync attempt was refused because another one is running."""

    default_code = "SYNC_IN_PROGRESS"

    def __init__(self, message: str = "Sync already in progress", **kwargs):
        super().__init__(message, **kwargs)


def handle_unexpected_error(error: Exception) -> MiniOrgError:
    """Wrap an arbitrary exception so it can be logged uniformly."""
    if isinstance(error, MiniOrgError):
        return error
    return MiniOrgError(
        message=f"{type(error).__name__}: {error}",
        error_code="UNEXPECTED_ERROR",
    )
