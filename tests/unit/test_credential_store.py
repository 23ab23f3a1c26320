"""
Tests for the credential store and its secret backends.
"""

import asyncio
import os
import stat
from typing import Optional

import keyring
import pytest
from cryptography.fernet import Fernet
from keyring.errors import KeyringError, PasswordDeleteError

from miniorg_desktop.auth import backends
from miniorg_desktop.auth import (
    AuthToken,
    CredentialStore,
    EncryptedFileBackend,
    KeyringBackend,
    SecretBackend,
    create_secret_backend,
)
from miniorg_desktop.config import CredentialConfig
from miniorg_desktop.exceptions import (
    ConfigurationError,
    CredentialCorruptError,
    CredentialStorageError,
)


class MemoryBackend(SecretBackend):
    """In-memory backend that can be told to fail."""

    def __init__(self, value: Optional[str] = None):
        self.value = value
        self.reads = 0
        self.fail_reads = False
        self.fail_writes = False
        self.fail_deletes = False

    async def read_secret(self):
        self.reads += 1
        if self.fail_reads:
            raise CredentialStorageError("keyring locked")
        return self.value

    async def write_secret(self, value):
        if self.fail_writes:
            raise CredentialStorageError("keyring locked")
        self.value = value

    async def delete_secret(self):
        if self.fail_deletes:
            raise CredentialStorageError("keyring locked")
        self.value = None


class TestCredentialStore:
    """Tests for CredentialStore."""

    @pytest.mark.asyncio
    async def test_cold_start_is_logged_out(self):
        store = CredentialStore(MemoryBackend())
        assert await store.get() is None

    @pytest.mark.asyncio
    async def test_set_then_get_from_durable_storage(self):
        backend = MemoryBackend()
        store = CredentialStore(backend)

        await store.set("T1", 1700000000)
        await store.invalidate_cache()

        token = await store.get()
        assert token == AuthToken(token="T1", expires_at=1700000000)
        assert backend.reads == 1

    @pytest.mark.asyncio
    async def test_get_is_cached_after_first_read(self):
        backend = MemoryBackend('{"token": "T1", "expires_at": null}')
        store = CredentialStore(backend)

        first = await store.get()
        second = await store.get()

        assert first == second
        assert first.expires_at is None
        assert backend.reads == 1

    @pytest.mark.asyncio
    async def test_new_instance_reads_previous_credential(self):
        backend = MemoryBackend()
        await CredentialStore(backend).set("T1")

        restarted = CredentialStore(backend)
        token = await restarted.get()
        assert token.token == "T1"

    @pytest.mark.asyncio
    async def test_set_replaces_whole_record(self):
        store = CredentialStore(MemoryBackend())
        await store.set("T1", 100)
        await store.set("T2")
        await store.invalidate_cache()

        token = await store.get()
        assert token.token == "T2"
        assert token.expires_at is None

    @pytest.mark.asyncio
    async def test_clear_is_idempotent(self):
        backend = MemoryBackend()
        store = CredentialStore(backend)
        await store.set("T1")

        await store.clear()
        await store.clear()

        assert await store.get() is None
        assert backend.value is None

    @pytest.mark.asyncio
    async def test_corrupt_record_is_not_logged_out(self):
        store = CredentialStore(MemoryBackend("not json"))
        with pytest.raises(CredentialCorruptError):
            await store.get()

    @pytest.mark.asyncio
    async def test_record_missing_token_field_is_corrupt(self):
        store = CredentialStore(MemoryBackend('{"expires_at": 5}'))
        with pytest.raises(CredentialCorruptError) as exc_info:
            await store.get()
        assert "Failed to parse stored token" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_failed_persist_leaves_memory_unchanged(self):
        backend = MemoryBackend()
        store = CredentialStore(backend)
        await store.set("T1")

        backend.fail_writes = True
        with pytest.raises(CredentialStorageError):
            await store.set("T2")

        token = await store.get()
        assert token.token == "T1"

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_session(self):
        backend = MemoryBackend()
        store = CredentialStore(backend)
        await store.set("T1")

        backend.fail_deletes = True
        with pytest.raises(CredentialStorageError):
            await store.clear()

        token = await store.get()
        assert token.token == "T1"

    @pytest.mark.asyncio
    async def test_backend_failure_is_raised_not_logged_out(self):
        backend = MemoryBackend()
        backend.fail_reads = True
        store = CredentialStore(backend)

        with pytest.raises(CredentialStorageError):
            await store.get()


class TestKeyringBackend:
    """Tests for KeyringBackend with the keyring API patched."""

    @pytest.fixture
    def fake_keyring(self, monkeypatch):
        entries = {}

        def get_password(service, username):
            return entries.get((service, username))

        def set_password(service, username, value):
            entries[(service, username)] = value

        def delete_password(service, username):
            if (service, username) not in entries:
                raise PasswordDeleteError("Password not found")
            del entries[(service, username)]

        monkeypatch.setattr(keyring, "get_password", get_password)
        monkeypatch.setattr(keyring, "set_password", set_password)
        monkeypatch.setattr(keyring, "delete_password", delete_password)
        return entries

    @pytest.mark.asyncio
    async def test_uses_miniorg_auth_token_entry(self, fake_keyring):
        store = CredentialStore(KeyringBackend())
        await store.set("T1", 42)

        assert ("miniorg", "auth_token") in fake_keyring
        assert AuthToken.model_validate_json(fake_keyring[("miniorg", "auth_token")]) == AuthToken(
            token="T1", expires_at=42
        )

    @pytest.mark.asyncio
    async def test_missing_entry_reads_none(self, fake_keyring):
        backend = KeyringBackend()
        assert await backend.read_secret() is None

    @pytest.mark.asyncio
    async def test_delete_missing_entry_succeeds(self, fake_keyring):
        backend = KeyringBackend()
        await backend.delete_secret()
        await backend.delete_secret()

    @pytest.mark.asyncio
    async def test_keyring_error_becomes_storage_error(self, monkeypatch):
        def broken(service, username):
            raise KeyringError("no backend available")

        monkeypatch.setattr(keyring, "get_password", broken)

        with pytest.raises(CredentialStorageError) as exc_info:
            await KeyringBackend().read_secret()
        assert "no backend available" in str(exc_info.value)


class TestEncryptedFileBackend:
    """Tests for EncryptedFileBackend."""

    @pytest.mark.asyncio
    async def test_roundtrip_is_encrypted_at_rest(self, tmp_path):
        path = tmp_path / "nested" / "credential.enc"
        backend = EncryptedFileBackend(path, Fernet.generate_key().decode())

        await backend.write_secret('{"token": "secret-token"}')

        assert path.exists()
        assert b"secret-token" not in path.read_bytes()
        assert await backend.read_secret() == '{"token": "secret-token"}'

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    @pytest.mark.asyncio
    async def test_file_is_owner_only(self, tmp_path):
        path = tmp_path / "credential.enc"
        backend = EncryptedFileBackend(path, "a passphrase")
        await backend.write_secret("value")

        mode = stat.S_IMODE(path.stat().st_mode)
        assert mode == 0o600

    @pytest.mark.asyncio
    async def test_missing_file_reads_none(self, tmp_path):
        backend = EncryptedFileBackend(tmp_path / "credential.enc", "a passphrase")
        assert await backend.read_secret() is None

    @pytest.mark.asyncio
    async def test_wrong_key_is_corrupt(self, tmp_path):
        path = tmp_path / "credential.enc"
        await EncryptedFileBackend(path, "first key").write_secret("value")

        with pytest.raises(CredentialCorruptError):
            await EncryptedFileBackend(path, "second key").read_secret()

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, tmp_path):
        path = tmp_path / "credential.enc"
        backend = EncryptedFileBackend(path, "a passphrase")
        await backend.write_secret("value")

        await backend.delete_secret()
        await backend.delete_secret()

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_file_access_runs_in_worker_thread(self, tmp_path, monkeypatch):
        offloaded = []
        original = asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append(func.__name__)
            return await original(func, *args, **kwargs)

        monkeypatch.setattr(backends.asyncio, "to_thread", recording_to_thread)
        backend = EncryptedFileBackend(tmp_path / "credential.enc", "a passphrase")

        await backend.write_secret("value")
        await backend.read_secret()
        await backend.delete_secret()

        assert offloaded == ["_write_file", "_read_file", "_delete_file"]

    def test_requires_encryption_key(self, tmp_path):
        with pytest.raises(ConfigurationError):
            EncryptedFileBackend(tmp_path / "credential.enc", "")


class TestCreateSecretBackend:
    """Tests for backend selection."""

    def test_keyring_by_default(self):
        backend = create_secret_backend(CredentialConfig())
        assert isinstance(backend, KeyringBackend)
        assert backend.service == "miniorg"
        assert backend.username == "auth_token"

    def test_file_backend(self, tmp_path):
        config = CredentialConfig(
            backend="file",
            file_path=tmp_path / "credential.enc",
            encryption_key="a passphrase",
        )
        backend = create_secret_backend(config)
        assert isinstance(backend, EncryptedFileBackend)
        assert backend.path == tmp_path / "credential.enc"

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_secret_backend(CredentialConfig(backend="vault"))
