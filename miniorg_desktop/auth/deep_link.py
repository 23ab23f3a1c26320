"""
Deep-link delivery of OAuth callbacks.

When the OS opens a ``miniorg://`` URL the GUI shell forwards it here. The URL
is parsed with the same rules as the loopback redirect and published on the
same events, so consumers do not care which path delivered the code.
"""

import logging
from typing import Optional

from ..events import EventBus
from .callback import deliver_callback, parse_callback_url
from .models import CallbackResult

logger = logging.getLogger(__name__)


def handle_deep_link(bus: EventBus, url: str) -> Optional[CallbackResult]:
    """Parse a deep link and publish its OAuth outcome.

    Safe to call from any thread; performs no I/O.

    Args:
        bus: Notification channel
        url: URL handed to the process by the OS

    Returns:
        Parsed result, or None when the link carried no OAuth parameters
    """
    logger.info("Deep link received")

    result = parse_callback_url(url)
    if result is None:
        logger.warning("Deep link carried neither an OAuth code nor an error")
        return None

    deliver_callback(bus, result)
    return result
