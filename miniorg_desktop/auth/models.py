"""
Authentication data models.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class AuthToken(BaseModel):
    """The application credential obtained after a successful OAuth exchange."""
    model_config = ConfigDict(frozen=True)

    token: str
    expires_at: Optional[int] = None


class OAuthCallbackPayload(BaseModel):
    """Authorization code delivered by a browser redirect or deep link."""
    code: str
    state: Optional[str] = None


@dataclass(frozen=True)
class CallbackResult:
    """Outcome of parsing one OAuth callback: a payload or an error."""
    payload: Optional[OAuthCallbackPayload] = None
    error: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.payload is not None

    @classmethod
    def success(cls, code: str, state: Optional[str] = None) -> "CallbackResult":
        return cls(payload=OAuthCallbackPayload(code=code, state=state))

    @classmethod
    def failure(cls, error: str) -> "CallbackResult":
        return cls(error=error)

    def to_dict(self) -> Dict[str, Any]:
        if self.payload is not None:
            return {"code": self.payload.code, "state": self.payload.state}
        return {"error": self.error}
