"""
Two-tier store for the current auth token.

The in-memory slot is a read-through/write-through cache over a durable
``SecretBackend``. Exactly one token is current at a time; ``set`` and
``clear`` replace the whole record.
"""

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from ..exceptions import CredentialCorruptError
from .backends import SecretBackend
from .models import AuthToken

logger = logging.getLogger(__name__)


class CredentialStore:
    """Owns the single current ``AuthToken``."""

    def __init__(self, backend: SecretBackend):
        """
        Initialize credential store.

        Args:
            backend: Durable secret storage
        """
        self.backend = backend
        self._token: Optional[AuthToken] = None
        # Private to the store; also serializes backend access
        self._lock = asyncio.Lock()

    async def get(self) -> Optional[AuthToken]:
        """
        Get the current token, reading through to durable storage on a miss.

        Returns:
            Current token, or None when logged out

        Raises:
            CredentialCorruptError: Stored record cannot be decoded
            CredentialStorageError: Backend unavailable
        """
        async with self._lock:
            if self._token is not None:
                return self._token

            raw = await self.backend.read_secret()
            if raw is None:
                logger.debug("No stored credential found")
                return None

            try:
                token = AuthToken.model_validate_json(raw)
            except ValidationError as e:
                raise CredentialCorruptError(
                    message=f"Failed to parse stored token: {e.error_count()} validation error(s)"
                ) from e

            self._token = token
            return token

    async def set(self, token: str, expires_at: Optional[int] = None) -> AuthToken:
        """
        Make a new token current and persist it.

        Durable storage is written first so a failed persist never leaves a
        token in memory that would vanish on restart.

        Args:
            token: Opaque token string
            expires_at: Optional expiry as epoch seconds

        Returns:
            The stored token
        """
        session = AuthToken(token=token, expires_at=expires_at)

        async with self._lock:
            await self.backend.write_secret(session.model_dump_json())
            self._token = session

        logger.info("Auth token stored")
        return session

    async def clear(self) -> None:
        """Remove the current token from memory and durable storage (logout)."""
        async with self._lock:
            await self.backend.delete_secret()
            self._token = None

        logger.info("Auth token cleared")

    async def invalidate_cache(self) -> None:
        """Drop the in-memory copy so the next ``get`` reads durable storage."""
        async with self._lock:
            self._token = None
