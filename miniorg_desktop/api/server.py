"""
Loopback FastAPI server the GUI shell talks to.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import MiniOrgError, handle_unexpected_error
from .context import CommandContext
from .router import create_command_router
from .security import ALLOWED_HOSTS

logger = logging.getLogger(__name__)

# Origins the desktop webview serves the UI from
SHELL_ORIGINS = [
    "tauri://localhost",
    "http://tauri.localhost",
    "http://localhost:1420",
]


def create_app(context: CommandContext) -> FastAPI:
    """Build the command API application around a set of components."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Command API starting up")
        yield
        logger.info("Command API shutting down")

    app = FastAPI(
        title="MiniOrg Desktop Core",
        description="Local command API for the MiniOrg desktop shell",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.context = context

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=ALLOWED_HOSTS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=SHELL_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Check service health."""
        status = await context.sync.get_status()
        return {
            "status": "healthy",
            "version": __version__,
            "server_time": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "sync_running": context.sync.is_running,
            "is_syncing": status.is_syncing,
        }

    app.include_router(create_command_router())

    @app.exception_handler(MiniOrgError)
    async def miniorg_error_handler(request, exc: MiniOrgError):
        """Handle errors a route did not map itself."""
        logger.error(f"Unhandled command error: {exc.to_log_string()}")
        return JSONResponse(status_code=500, content={"detail": exc.to_dict()})

    @app.exception_handler(Exception)
    async def general_error_handler(request, exc: Exception):
        """Handle unexpected errors."""
        error = handle_unexpected_error(exc)
        logger.exception(f"Unexpected command API error: {error.to_log_string()}")
        return JSONResponse(
            status_code=500,
            content={"detail": {"code": error.error_code, "message": "An unexpected error occurred"}},
        )

    return app


class CommandServer:
    """Runs the command API with uvicorn on the loopback interface."""

    def __init__(self, context: CommandContext):
        """Initialize command server.

        Args:
            context: Components exposed through the API
        """
        self.context = context
        self.app = create_app(context)
        self.server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task] = None

    async def start_server(self) -> None:
        """Start the server in the background without blocking."""
        if self._server_task is not None:
            logger.warning("Command server already running")
            return

        host = self.context.config.command_server.host
        port = self.context.config.command_server.port

        logger.info(f"Starting command server on {host}:{port}")

        server_config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
            loop="asyncio",
        )
        self.server = uvicorn.Server(server_config)
        self._server_task = asyncio.create_task(self.server.serve())

        logger.info(f"Command server started on http://{host}:{port}")

    async def stop_server(self) -> None:
        """Stop the server gracefully."""
        if self.server is None:
            logger.warning("Command server not running")
            return

        logger.info("Stopping command server...")
        self.server.should_exit = True

        if self._server_task:
            try:
                await asyncio.wait_for(self._server_task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Server shutdown timed out, cancelling task")
                self._server_task.cancel()
                try:
                    await self._server_task
                except asyncio.CancelledError:
                    pass

        self.server = None
        self._server_task = None

        logger.info("Command server stopped")
