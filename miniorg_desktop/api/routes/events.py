"""
Server-sent event stream of the event bus.
"""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from ...events import Event
from ..context import CommandContext, get_context

logger = logging.getLogger(__name__)

router = APIRouter()

KEEPALIVE_SECONDS = 15.0


def format_sse(event: Event) -> str:
    """Encode an event as one SSE message."""
    data = json.dumps(event.to_dict()["payload"])
    return f"event: {event.name}\ndata: {data}\n\n"


@router.get(
    "",
    summary="Stream events",
    description="Server-sent events for OAuth callbacks and other notifications.",
    response_class=StreamingResponse,
)
async def stream_events(request: Request, ctx: CommandContext = Depends(get_context)):
    """Forward every bus event to the client until it disconnects."""
    queue, unsubscribe = ctx.bus.subscribe_queue()

    async def event_source():
        logger.info("Event stream client connected")
        try:
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield format_sse(event)
        finally:
            unsubscribe()
            logger.info("Event stream client disconnected")

    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
