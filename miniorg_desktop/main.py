"""
Main application entry point for the MiniOrg desktop core.

This module wires the components the GUI shell relies on:
- Credential store over the OS keyring or an encrypted file
- Loopback OAuth redirect listener and deep-link adapter
- Background calendar sync
- Local command API
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from .api import CommandContext, CommandServer
from .api.security import generate_command_secret
from .auth import AuthorizationFlow, CredentialStore, create_secret_backend
from .config import AppConfig, load_config
from .events import OAUTH_CODE_RECEIVED, OAUTH_ERROR, Event, EventBus
from .exceptions import MiniOrgError, handle_unexpected_error
from .sync import CalendarSyncClient, SyncScheduler


def setup_logging(config: Optional[AppConfig] = None) -> None:
    """Configure root logging to stdout plus an optional log file."""
    log_handlers = [logging.StreamHandler(sys.stdout)]
    log_file = config.log_file if config else None
    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            log_handlers.append(logging.FileHandler(str(log_path)))
        except OSError:
            # File logging not available, use stdout only
            pass

    level = config.log_level.value if config else "INFO"
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=log_handlers,
        force=True,
    )


def announce_command_secret(secret: str) -> None:
    """Hand a generated command secret to the GUI shell on stdout.

    The shell reads this line from the child process it spawned. The secret
    is never logged.
    """
    sys.stdout.write(f"MINIORG_COMMAND_SECRET={secret}\n")
    sys.stdout.flush()


class DesktopCoreApp:
    """Owns every desktop core component for the lifetime of the process."""

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config
        self.bus = EventBus()
        self.credentials: Optional[CredentialStore] = None
        self.auth_flow: Optional[AuthorizationFlow] = None
        self.sync_client: Optional[CalendarSyncClient] = None
        self.sync: Optional[SyncScheduler] = None
        self.command_server: Optional[CommandServer] = None
        self.running = False

        self._shutdown_event: Optional[asyncio.Event] = None
        self._unlisten = []
        self.logger = logging.getLogger(__name__)

    async def initialize(self, dotenv_path: Optional[str] = None) -> None:
        """Load configuration and construct all components."""
        try:
            if self.config is None:
                self.config = load_config(dotenv_path)
            setup_logging(self.config)
            self.logger.info("Initializing MiniOrg desktop core...")

            backend = create_secret_backend(self.config.credential)
            self.credentials = CredentialStore(backend)
            self.auth_flow = AuthorizationFlow(self.bus, self.config.oauth)

            self.sync_client = CalendarSyncClient()
            self.sync = SyncScheduler(
                self.sync_client,
                interval_seconds=self.config.sync.interval_seconds,
                token_provider=self._current_token,
            )

            self._unlisten.append(self.bus.listen(OAUTH_CODE_RECEIVED, self._on_oauth_code))
            self._unlisten.append(self.bus.listen(OAUTH_ERROR, self._on_oauth_error))

            if self.config.command_server.enabled:
                secret = self.config.command_server.secret
                if not secret:
                    secret = generate_command_secret()
                    announce_command_secret(secret)
                self.command_server = CommandServer(
                    CommandContext(
                        config=self.config,
                        bus=self.bus,
                        credentials=self.credentials,
                        auth_flow=self.auth_flow,
                        sync=self.sync,
                        command_secret=secret,
                    )
                )

            self.logger.info("All components initialized successfully")

        except Exception as e:
            error = handle_unexpected_error(e)
            self.logger.error(f"Failed to initialize application: {error.to_log_string()}")
            raise

    async def start(self) -> None:
        """Start services and block until a shutdown signal arrives."""
        if self.config is None or self.sync is None:
            raise RuntimeError("Application not initialized. Call initialize() first.")

        self.running = True
        self._shutdown_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._signal_handler, sig)
            except NotImplementedError:
                # Not supported on Windows event loops
                pass

        if self.command_server:
            await self.command_server.start_server()

        if self.config.sync.auto_start:
            await self._auto_start_sync()

        self.logger.info("MiniOrg desktop core is running")
        await self._shutdown_event.wait()
        await self.stop()

    async def stop(self) -> None:
        """Stop all services in reverse order of startup."""
        if not self.running:
            return
        self.running = False
        self.logger.info("Initiating graceful shutdown...")

        if self.command_server:
            await self.command_server.stop_server()

        if self.auth_flow:
            await self.auth_flow.shutdown()

        if self.sync:
            self.sync.stop()

        if self.sync_client:
            await self.sync_client.close()

        for unlisten in self._unlisten:
            unlisten()
        self._unlisten.clear()

        self.logger.info("MiniOrg desktop core stopped cleanly")

    async def _auto_start_sync(self) -> None:
        """Start the periodic sync loop if a credential is stored."""
        try:
            token = await self.credentials.get()
        except MiniOrgError as e:
            self.logger.error(f"Cannot auto-start sync: {e.to_log_string()}")
            return

        if token is None:
            self.logger.info("Not logged in; periodic sync not started")
            return

        self.sync.start_background_loop(self.config.api_url, token.token)

    async def _current_token(self) -> Optional[str]:
        """Bearer token for the next scheduled sync, or None when logged out."""
        token = await self.credentials.get()
        return token.token if token else None

    def _on_oauth_code(self, event: Event) -> None:
        self.logger.info("OAuth authorization code received")

    def _on_oauth_error(self, event: Event) -> None:
        self.logger.warning(f"OAuth callback reported an error: {event.payload}")

    def _signal_handler(self, signum) -> None:
        """Handle shutdown signals (SIGINT, SIGTERM)."""
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        self.logger.info(f"Received {signal_name}, initiating graceful shutdown...")
        if self._shutdown_event:
            self._shutdown_event.set()


async def main(dotenv_path: Optional[str] = None) -> None:
    """Run the desktop core until interrupted."""
    app = DesktopCoreApp()

    try:
        await app.initialize(dotenv_path)
        await app.start()
    except KeyboardInterrupt:
        await app.stop()
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        await app.stop()
        sys.exit(1)
