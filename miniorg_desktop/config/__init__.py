"""
Configuration management for the MiniOrg desktop core.
"""

import logging
from typing import Optional

from ..exceptions import ConfigurationError
from .environment import EnvironmentLoader
from .settings import (
    AppConfig,
    CommandServerConfig,
    CredentialBackendType,
    CredentialConfig,
    LogLevel,
    OAuthConfig,
    SyncConfig,
)
from .validation import ConfigValidator

logger = logging.getLogger(__name__)


def load_config(dotenv_path: Optional[str] = None) -> AppConfig:
    """Load and validate configuration from the environment.

    Raises:
        ConfigurationError: One or more settings are invalid
    """
    try:
        config = EnvironmentLoader.load_config(dotenv_path)
    except ValueError as e:
        raise ConfigurationError(f"Invalid configuration value: {e}") from e

    errors = ConfigValidator.validate_config(config)
    if errors:
        for error in errors:
            logger.error(f"Configuration error: {error}")
        raise ConfigurationError(
            message=f"Invalid configuration: {'; '.join(errors)}",
            context={"error_count": len(errors)},
        )
    return config


__all__ = [
    "AppConfig",
    "CommandServerConfig",
    "CredentialBackendType",
    "CredentialConfig",
    "LogLevel",
    "OAuthConfig",
    "SyncConfig",
    "EnvironmentLoader",
    "ConfigValidator",
    "load_config",
]
