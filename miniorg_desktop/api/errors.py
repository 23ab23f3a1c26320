"""
HTTP error mapping for the command API.
"""

from fastapi import HTTPException

from ..exceptions import MiniOrgError


def api_error(status_code: int, error: MiniOrgError) -> HTTPException:
    """Build an HTTPException carrying the error's code and message."""
    return HTTPException(status_code=status_code, detail=error.to_dict())
