"""
Configuration data classes for the MiniOrg desktop core.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class LogLevel(str, Enum):
    """Supported log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class CredentialBackendType(str, Enum):
    """Durable credential storage backends."""
    KEYRING = "keyring"
    FILE = "file"


DEFAULT_API_URL = "http://localhost:3000"
DEFAULT_SYNC_INTERVAL_SECONDS = 15 * 60
DEFAULT_CALLBACK_TIMEOUT_SECONDS = 300.0


@dataclass
class CredentialConfig:
    """Where the current auth token is persisted."""
    backend: str = CredentialBackendType.KEYRING.value
    keyring_service: str = "miniorg"
    keyring_username: str = "auth_token"
    file_path: Path = field(
        default_factory=lambda: Path.home() / ".config" / "miniorg" / "credential.enc"
    )
    encryption_key: Optional[str] = None


@dataclass
class OAuthConfig:
    """Desktop OAuth client settings."""
    client_id: Optional[str] = None
    # None waits for the browser redirect indefinitely
    callback_timeout: Optional[float] = DEFAULT_CALLBACK_TIMEOUT_SECONDS


@dataclass
class SyncConfig:
    """Background calendar sync settings."""
    interval_seconds: int = DEFAULT_SYNC_INTERVAL_SECONDS
    auto_start: bool = False


@dataclass
class CommandServerConfig:
    """Loopback command API used by the GUI shell."""
    host: str = "127.0.0.1"
    port: int = 4599
    enabled: bool = True
    # Shared with the GUI shell; generated per launch when unset
    secret: Optional[str] = None


@dataclass
class AppConfig:
    """Top level desktop core configuration."""
    api_url: str = DEFAULT_API_URL
    credential: CredentialConfig = field(default_factory=CredentialConfig)
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    command_server: CommandServerConfig = field(default_factory=CommandServerConfig)
    log_level: LogLevel = LogLevel.INFO
    log_file: Optional[str] = "data/miniorg-desktop.log"
