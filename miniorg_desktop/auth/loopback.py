"""
Loopback redirect listener for the desktop OAuth flow.

Google accepts ``http://127.0.0.1:<port>`` redirects for installed apps, so
each authorization attempt binds a fresh OS-assigned port, advertises
``http://127.0.0.1:<port>/callback`` as the redirect URI, serves exactly one
browser request and releases the port again.

State machine::

    UNBOUND -> BOUND -> AWAITING_CONNECTION -> SERVED
                    \\                      \\-> FAILED
                     \\-> FAILED (abandoned)
"""

import asyncio
import logging
import socket
from enum import Enum
from typing import Optional

from ..events import EventBus
from ..exceptions import CallbackListenerError
from .callback import deliver_callback, parse_request_line
from .models import CallbackResult

logger = logging.getLogger(__name__)

LOOPBACK_HOST = "127.0.0.1"
CALLBACK_PATH = "/callback"
READ_BUFFER_SIZE = 4096

CLOSE_PAGE = """
<!doctype html>
<html>
  <head><meta charset="utf-8"><title>MiniOrg</title></head>
  <body style="font-family: sans-serif; padding: 24px;">
    <h2>Login received</h2>
    <p>You can close this window and return to MiniOrg.</p>
    <script>window.close();</script>
  </body>
</html>
"""


def build_close_response() -> bytes:
    """HTTP response sent for every callback, parsed or not."""
    body = CLOSE_PAGE.encode("utf-8")
    head = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + body


class ListenerState(str, Enum):
    """Lifecycle of a loopback listener."""
    UNBOUND = "unbound"
    BOUND = "bound"
    AWAITING_CONNECTION = "awaiting_connection"
    SERVED = "served"
    FAILED = "failed"


class LoopbackListener:
    """One-shot loopback HTTP listener for a single OAuth redirect."""

    def __init__(
        self,
        bus: EventBus,
        accept_timeout: Optional[float] = 300.0,
        read_timeout: float = 30.0,
        host: str = LOOPBACK_HOST,
    ):
        """Initialize listener.

        Args:
            bus: Channel the parsed callback is delivered on
            accept_timeout: Seconds to wait for the browser, None for no limit
            read_timeout: Seconds to wait for request bytes after connecting
            host: Loopback address to bind
        """
        self.bus = bus
        self.accept_timeout = accept_timeout
        self.read_timeout = read_timeout
        self.host = host

        self.state = ListenerState.UNBOUND
        self.port: Optional[int] = None
        self.redirect_uri: Optional[str] = None
        self.result: Optional[CallbackResult] = None

        self._sock: Optional[socket.socket] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def done(self) -> bool:
        return self.state in (ListenerState.SERVED, ListenerState.FAILED)

    async def start(self) -> str:
        """Bind an ephemeral port and start waiting for the redirect.

        Returns:
            Redirect URI to embed in the authorization request

        Raises:
            CallbackListenerError: Already started, or the port cannot be bound
        """
        if self.state != ListenerState.UNBOUND:
            raise CallbackListenerError(f"Listener already started (state={self.state.value})")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((self.host, 0))
            sock.listen(1)
            sock.setblocking(False)
            self.port = sock.getsockname()[1]
        except OSError as e:
            sock.close()
            self.state = ListenerState.FAILED
            raise CallbackListenerError(f"Failed to bind loopback listener: {e}") from e

        self._sock = sock
        self.redirect_uri = f"http://{self.host}:{self.port}{CALLBACK_PATH}"
        self.state = ListenerState.BOUND

        self._task = asyncio.create_task(
            self._serve_once(), name=f"oauth-loopback-{self.port}"
        )
        logger.info(f"OAuth loopback listener waiting on port {self.port}")
        return self.redirect_uri

    async def wait(self) -> Optional[CallbackResult]:
        """Join the listener task.

        Returns:
            The delivered callback result, or None if nothing was served
        """
        if self._task is None:
            return self.result
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                return None
            raise

    def abandon(self) -> None:
        """Stop waiting and release the port without delivering anything."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._close_listening_socket()
        if not self.done:
            self.state = ListenerState.FAILED

    def _close_listening_socket(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    async def _serve_once(self) -> Optional[CallbackResult]:
        loop = asyncio.get_running_loop()
        self.state = ListenerState.AWAITING_CONNECTION

        try:
            accept = loop.sock_accept(self._sock)
            if self.accept_timeout is not None:
                conn, _ = await asyncio.wait_for(accept, self.accept_timeout)
            else:
                conn, _ = await accept
        except asyncio.TimeoutError:
            logger.warning(
                f"No OAuth redirect arrived on port {self.port} within {self.accept_timeout}s"
            )
            self.state = ListenerState.FAILED
            return None
        except asyncio.CancelledError:
            self.state = ListenerState.FAILED
            raise
        except OSError as e:
            logger.error(f"OAuth loopback accept failed on port {self.port}: {e}")
            self.state = ListenerState.FAILED
            return None
        finally:
            # One connection per listener: later connections are refused
            self._close_listening_socket()

        with conn:
            result = await self._handle_connection(loop, conn)

        self.result = result
        self.state = ListenerState.SERVED

        if result.is_success:
            logger.info("OAuth code received via loopback redirect")
        else:
            logger.warning(f"OAuth loopback callback reported error: {result.error}")

        deliver_callback(self.bus, result)
        return result

    async def _handle_connection(
        self, loop: asyncio.AbstractEventLoop, conn: socket.socket
    ) -> CallbackResult:
        """Read the request, always answer with the close-tab page."""
        try:
            data = await asyncio.wait_for(
                loop.sock_recv(conn, READ_BUFFER_SIZE), self.read_timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Failed to read OAuth callback request: {e!r}")
            data = b""

        result = parse_request_line(data.decode("utf-8", errors="replace"))

        try:
            await loop.sock_sendall(conn, build_close_response())
            conn.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            logger.debug(f"Failed to send OAuth callback response: {e}")

        return result
