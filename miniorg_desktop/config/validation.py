"""
Configuration validation for the MiniOrg desktop core.
"""

import re
from typing import List

from .settings import AppConfig, CredentialBackendType


class ConfigValidator:
    """Validates configuration settings."""

    @staticmethod
    def validate_config(config: AppConfig) -> List[str]:
        """Validate the entire application configuration."""
        errors = []

        errors.extend(ConfigValidator._validate_api_url(config.api_url))
        errors.extend(ConfigValidator._validate_credential_config(config))
        errors.extend(ConfigValidator._validate_command_server(config))
        errors.extend(ConfigValidator._validate_numeric_ranges(config))

        return errors

    @staticmethod
    def _validate_api_url(api_url: str) -> List[str]:
        """Validate the remote API base URL."""
        errors = []

        url_pattern = r'^https?://[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$'
        if not re.match(url_pattern, api_url or ''):
            errors.append(f"Invalid API URL: {api_url}")

        return errors

    @staticmethod
    def _validate_credential_config(config: AppConfig) -> List[str]:
        """Validate credential backend selection."""
        errors = []

        valid_backends = [b.value for b in CredentialBackendType]
        backend = config.credential.backend
        if backend not in valid_backends:
            errors.append(
                f"Invalid credential backend: {backend}. "
                f"Valid backends: {', '.join(valid_backends)}"
            )

        # An ephemeral key would make the stored credential unreadable after restart
        if backend == CredentialBackendType.FILE.value and not config.credential.encryption_key:
            errors.append("CREDENTIAL_ENCRYPTION_KEY is required for the file credential backend")

        if backend == CredentialBackendType.KEYRING.value:
            if not config.credential.keyring_service or not config.credential.keyring_username:
                errors.append("Keyring service and username must not be empty")

        return errors

    @staticmethod
    def _validate_command_server(config: AppConfig) -> List[str]:
        """Validate the command API listener."""
        errors = []

        server = config.command_server
        if not (1 <= server.port <= 65535):
            errors.append(f"Command server port {server.port} is not in valid range (1-65535)")

        if server.host not in ('127.0.0.1', 'localhost'):
            errors.append(f"Command server must bind to loopback, got {server.host}")

        return errors

    @staticmethod
    def _validate_numeric_ranges(config: AppConfig) -> List[str]:
        """Validate numeric configuration values."""
        errors = []

        if config.sync.interval_seconds <= 0:
            errors.append("Sync interval must be positive")

        timeout = config.oauth.callback_timeout
        if timeout is not None and timeout <= 0:
            errors.append("OAuth callback timeout must be positive")

        return errors
