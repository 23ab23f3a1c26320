"""
Parsing of OAuth redirect callbacks.

Shared by the loopback listener and the deep-link adapter so both delivery
paths apply the same precedence: a ``code`` parameter wins over ``error``.
"""

import logging
from typing import List, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

from ..events import EventBus, OAUTH_CODE_RECEIVED, OAUTH_ERROR
from .models import CallbackResult

logger = logging.getLogger(__name__)

INVALID_CALLBACK_ERROR = "Invalid OAuth callback"

# Request paths are resolved against a synthetic authority
CALLBACK_BASE = "http://localhost"


def _first(pairs: List[Tuple[str, str]], key: str) -> Optional[str]:
    for name, value in pairs:
        if name == key:
            return value
    return None


def parse_callback_url(url: str) -> Optional[CallbackResult]:
    """Extract code/state or error from a full callback URL.

    Args:
        url: Absolute URL (loopback or custom scheme)

    Returns:
        Callback result, or None when the URL has neither code nor error
        or cannot be parsed
    """
    try:
        query = urlsplit(url).query
    except ValueError as e:
        logger.debug(f"Unparsable callback URL: {e}")
        return None

    pairs = parse_qsl(query, keep_blank_values=True)

    code = _first(pairs, "code")
    if code is not None:
        return CallbackResult.success(code, _first(pairs, "state"))

    error = _first(pairs, "error")
    if error is not None:
        return CallbackResult.failure(error)

    return None


def parse_request_line(request: str) -> CallbackResult:
    """Parse a raw HTTP request into a callback result.

    Anything that is not a usable request line (including an empty read)
    becomes the generic invalid-callback error.
    """
    lines = request.splitlines()
    if not lines:
        return CallbackResult.failure(INVALID_CALLBACK_ERROR)

    parts = lines[0].split()
    if len(parts) < 2:
        return CallbackResult.failure(INVALID_CALLBACK_ERROR)

    result = parse_callback_url(f"{CALLBACK_BASE}{parts[1]}")
    if result is None:
        return CallbackResult.failure(INVALID_CALLBACK_ERROR)
    return result


def deliver_callback(bus: EventBus, result: CallbackResult) -> None:
    """Emit a callback result on the notification channel."""
    if result.payload is not None:
        bus.emit(OAUTH_CODE_RECEIVED, result.payload)
    else:
        bus.emit(OAUTH_ERROR, result.error)
