"""
Durable secret storage backends for the auth credential.

Supports:
- OS keyring (macOS Keychain, Windows Credential Locker, Secret Service)
- Encrypted file (headless Linux without a Secret Service daemon)

Backends store one opaque string. ``None`` from ``read_secret`` means nothing
has been stored, which is a normal logged-out state; any other failure raises.
"""

import asyncio
import base64
import hashlib
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import keyring
from cryptography.fernet import Fernet, InvalidToken
from keyring.errors import KeyringError, PasswordDeleteError

from ..config.settings import CredentialBackendType, CredentialConfig
from ..exceptions import ConfigurationError, CredentialCorruptError, CredentialStorageError

logger = logging.getLogger(__name__)


class SecretBackend(ABC):
    """Abstract base class for durable secret storage."""

    @abstractmethod
    async def read_secret(self) -> Optional[str]:
        """
        Read the stored secret.

        Returns:
            Secret value or None if nothing is stored

        Raises:
            CredentialStorageError: Backend unavailable
        """
        pass

    @abstractmethod
    async def write_secret(self, value: str) -> None:
        """
        Store the secret, replacing any previous value.

        Args:
            value: Secret value

        Raises:
            CredentialStorageError: Backend unavailable
        """
        pass

    @abstractmethod
    async def delete_secret(self) -> None:
        """
        Delete the stored secret. Deleting a missing secret succeeds.

        Raises:
            CredentialStorageError: Backend unavailable
        """
        pass


class KeyringBackend(SecretBackend):
    """
    OS keyring backend.

    The secret lives in a single entry keyed by (service, username). Keyring
    calls can block on a desktop unlock prompt, so they run in a worker thread.
    """

    def __init__(self, service: str = "miniorg", username: str = "auth_token"):
        """
        Initialize keyring backend.

        Args:
            service: Keyring service name
            username: Keyring account name
        """
        self.service = service
        self.username = username

    async def read_secret(self) -> Optional[str]:
        try:
            return await asyncio.to_thread(keyring.get_password, self.service, self.username)
        except KeyringError as e:
            raise CredentialStorageError(
                message=f"Failed to read credential from keyring: {e}",
                context={"service": self.service},
            ) from e

    async def write_secret(self, value: str) -> None:
        try:
            await asyncio.to_thread(keyring.set_password, self.service, self.username, value)
            logger.debug(f"Stored credential in keyring service {self.service}")
        except KeyringError as e:
            raise CredentialStorageError(
                message=f"Failed to write credential to keyring: {e}",
                context={"service": self.service},
            ) from e

    async def delete_secret(self) -> None:
        try:
            await asyncio.to_thread(keyring.delete_password, self.service, self.username)
            logger.debug(f"Deleted credential from keyring service {self.service}")
        except PasswordDeleteError:
            # No entry: logout is idempotent
            logger.debug(f"No keyring entry to delete for service {self.service}")
        except KeyringError as e:
            raise CredentialStorageError(
                message=f"Failed to delete credential from keyring: {e}",
                context={"service": self.service},
            ) from e


def derive_fernet_key(key: str) -> bytes:
    """Turn a Fernet key or an arbitrary passphrase into a Fernet key."""
    # Fernet keys are 44 chars base64
    if len(key) == 44:
        return key.encode()
    return base64.urlsafe_b64encode(hashlib.sha256(key.encode()).digest())


class EncryptedFileBackend(SecretBackend):
    """
    Encrypted file backend.

    Uses Fernet symmetric encryption; the file is written with owner-only
    permissions. File access runs in a worker thread.
    """

    def __init__(self, path: Path, encryption_key: str):
        """
        Initialize encrypted file backend.

        Args:
            path: File holding the encrypted secret
            encryption_key: Fernet key or passphrase
        """
        if not encryption_key:
            raise ConfigurationError("Encrypted file backend requires an encryption key")
        self.path = Path(path)
        self._fernet = Fernet(derive_fernet_key(encryption_key))

    async def read_secret(self) -> Optional[str]:
        try:
            encrypted = await asyncio.to_thread(self._read_file)
        except OSError as e:
            raise CredentialStorageError(
                message=f"Failed to read credential file {self.path}: {e}"
            ) from e

        if encrypted is None:
            return None

        try:
            return self._fernet.decrypt(encrypted).decode()
        except (InvalidToken, UnicodeDecodeError) as e:
            raise CredentialCorruptError(
                message=f"Stored credential in {self.path} could not be decrypted"
            ) from e

    async def write_secret(self, value: str) -> None:
        encrypted = self._fernet.encrypt(value.encode())
        try:
            await asyncio.to_thread(self._write_file, encrypted)
            logger.debug(f"Saved encrypted credential to {self.path}")
        except OSError as e:
            raise CredentialStorageError(
                message=f"Failed to write credential file {self.path}: {e}"
            ) from e

    async def delete_secret(self) -> None:
        try:
            await asyncio.to_thread(self._delete_file)
        except OSError as e:
            raise CredentialStorageError(
                message=f"Failed to delete credential file {self.path}: {e}"
            ) from e

    def _read_file(self) -> Optional[bytes]:
        try:
            return self.path.read_bytes()
        except FileNotFoundError:
            return None

    def _write_file(self, encrypted: bytes) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_bytes(encrypted)
        tmp_path.chmod(0o600)
        os.replace(tmp_path, self.path)

    def _delete_file(self) -> None:
        try:
            self.path.unlink()
            logger.debug(f"Deleted credential file {self.path}")
        except FileNotFoundError:
            pass


def create_secret_backend(config: CredentialConfig) -> SecretBackend:
    """
    Get the backend selected by configuration.

    Args:
        config: Credential configuration

    Returns:
        Backend instance
    """
    if config.backend == CredentialBackendType.FILE.value:
        return EncryptedFileBackend(config.file_path, config.encryption_key or "")

    if config.backend == CredentialBackendType.KEYRING.value:
        return KeyringBackend(config.keyring_service, config.keyring_username)

    raise ConfigurationError(f"Unknown credential backend: {config.backend}")
