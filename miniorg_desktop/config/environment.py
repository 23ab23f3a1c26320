"""
Environment variable handling for MiniOrg desktop configuration.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from .settings import (
    AppConfig,
    CommandServerConfig,
    CredentialConfig,
    LogLevel,
    OAuthConfig,
    SyncConfig,
    DEFAULT_API_URL,
    DEFAULT_CALLBACK_TIMEOUT_SECONDS,
    DEFAULT_SYNC_INTERVAL_SECONDS,
)


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def load_config(dotenv_path: Optional[str] = None) -> AppConfig:
        """Load configuration from environment variables.

        Args:
            dotenv_path: Optional explicit .env file, defaults to discovery

        Returns:
            Populated application configuration
        """
        # Real environment wins over .env so the GUI shell can override values
        load_dotenv(dotenv_path, override=False)

        credential_file = os.getenv('CREDENTIAL_FILE')
        credential_config = CredentialConfig(
            backend=os.getenv('CREDENTIAL_BACKEND', 'keyring').lower(),
            keyring_service=os.getenv('KEYRING_SERVICE', 'miniorg'),
            keyring_username=os.getenv('KEYRING_USERNAME', 'auth_token'),
            encryption_key=os.getenv('CREDENTIAL_ENCRYPTION_KEY') or None,
        )
        if credential_file:
            credential_config.file_path = Path(credential_file).expanduser()

        oauth_config = OAuthConfig(
            client_id=os.getenv('GOOGLE_CLIENT_ID_DESKTOP') or None,
            callback_timeout=EnvironmentLoader._parse_timeout(
                os.getenv('OAUTH_CALLBACK_TIMEOUT')
            ),
        )

        sync_config = SyncConfig(
            interval_seconds=int(
                os.getenv('SYNC_INTERVAL_SECONDS', str(DEFAULT_SYNC_INTERVAL_SECONDS))
            ),
            auto_start=os.getenv('SYNC_AUTO_START', 'false').lower() == 'true',
        )

        command_config = CommandServerConfig(
            host=os.getenv('MINIORG_COMMAND_HOST', '127.0.0.1'),
            port=int(os.getenv('MINIORG_COMMAND_PORT', '4599')),
            enabled=os.getenv('MINIORG_COMMAND_ENABLED', 'true').lower() == 'true',
            secret=os.getenv('MINIORG_COMMAND_SECRET') or None,
        )

        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
        log_level = LogLevel.INFO
        try:
            log_level = LogLevel(log_level_str)
        except ValueError:
            pass  # Use default

        return AppConfig(
            api_url=os.getenv('MINIORG_API_URL', DEFAULT_API_URL).rstrip('/'),
            credential=credential_config,
            oauth=oauth_config,
            sync=sync_config,
            command_server=command_config,
            log_level=log_level,
            log_file=os.getenv('LOG_FILE', 'data/miniorg-desktop.log') or None,
        )

    @staticmethod
    def _parse_timeout(value: Optional[str]) -> Optional[float]:
        """Parse the callback timeout; 0 or negative means wait forever."""
        if value is None or value == '':
            return DEFAULT_CALLBACK_TIMEOUT_SECONDS
        seconds = float(value)
        if seconds <= 0:
            return None
        return seconds
