"""
Named event channel between the desktop core and the GUI shell.

Handlers are plain callables invoked in the emitting thread. The OS hands deep
links to the process on whatever thread it likes, so ``emit`` never blocks and
never awaits; async consumers bridge onto their loop with
``subscribe_queue``.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

OAUTH_CODE_RECEIVED = "oauth-code-received"
OAUTH_ERROR = "oauth-error"

EventHandler = Callable[["Event"], None]


@dataclass(frozen=True)
class Event:
    """A single notification."""
    name: str
    payload: Any = None

    def to_dict(self) -> Dict[str, Any]:
        payload = self.payload
        if hasattr(payload, "model_dump"):
            payload = payload.model_dump()
        return {"event": self.name, "payload": payload}


class EventBus:
    """Thread-safe registry of named event handlers."""

    # Wildcard name: handler receives every event
    ALL = "*"

    def __init__(self):
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._lock = threading.Lock()

    def listen(self, name: str, handler: EventHandler) -> Callable[[], None]:
        """Register a handler for an event name.

        Args:
            name: Event name, or ``EventBus.ALL``
            handler: Callable receiving the ``Event``

        Returns:
            Function that removes the handler again
        """
        with self._lock:
            self._handlers.setdefault(name, []).append(handler)

        def unlisten() -> None:
            with self._lock:
                handlers = self._handlers.get(name, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unlisten

    def emit(self, name: str, payload: Any = None) -> Event:
        """Deliver an event to every registered handler."""
        event = Event(name=name, payload=payload)

        with self._lock:
            handlers = list(self._handlers.get(name, [])) + list(self._handlers.get(self.ALL, []))

        logger.debug(f"Emitting {name} to {len(handlers)} handler(s)")
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler for {name} failed: {e}")

        return event

    def subscribe_queue(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        name: str = ALL,
    ) -> Tuple["asyncio.Queue[Event]", Callable[[], None]]:
        """Bridge events onto an asyncio queue owned by ``loop``.

        Returns:
            Tuple of (queue, unsubscribe)
        """
        loop = loop or asyncio.get_running_loop()
        queue: "asyncio.Queue[Event]" = asyncio.Queue()

        def enqueue(event: Event) -> None:
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(queue.put_nowait, event)

        return queue, self.listen(name, enqueue)

    def handler_count(self, name: Optional[str] = None) -> int:
        with self._lock:
            if name is not None:
                return len(self._handlers.get(name, []))
            return sum(len(h) for h in self._handlers.values())
