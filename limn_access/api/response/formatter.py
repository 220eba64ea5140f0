"""Response formatting utilities for limn_access API."""

from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .types import PermissionResponse


def format_response(
    valid: bool,
    message: str,
    data: Optional[Any] = None,
) -> PermissionResponse:
    """Build the response envelope.

    Args:
        valid: Whether the request was allowed and succeeded
        message: Human-readable message
        data: Optional payload

    Returns:
        Envelope model stamped with the current time
    """
    return PermissionResponse(success=valid, message=message, data=data)


def create_permission_response(
    valid: bool,
    message: str,
    status_code: int = 403,
    data: Optional[Any] = None,
) -> JSONResponse:
    """Create a permission-aware JSON response.

    Args:
        valid: Whether the request was allowed
        message: Human-readable message
        status_code: HTTP status code
        data: Optional payload

    Returns:
        JSONResponse carrying the ``{success, message, data, timestamp}`` envelope
    """
    envelope = format_response(valid, message, data)
    return JSONResponse(
        content=jsonable_encoder(envelope),
        status_code=status_code,
    )
