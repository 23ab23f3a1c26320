"""
Loopback command API for the desktop shell.
"""

from .context import CommandContext, get_context
from .router import create_command_router
from .server import CommandServer, create_app

__all__ = [
    "CommandContext",
    "get_context",
    "create_command_router",
    "CommandServer",
    "create_app",
]
