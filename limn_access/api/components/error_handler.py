"""Unified error handling for limn_access API.

Every exception that escapes a route is rendered as JSON here. Guard
denials raised by the dependency adapter keep the permission envelope and
the guard's status code; everything else gets an ``error_code`` body.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException

from limn_access.api.auth.guard import AccessDeniedException
from limn_access.exceptions import LimnAccessAPIException

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    422: "validation_error",
    500: "internal_error",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class APIErrorHandler:
    """Centralized error handling with request context."""

    @staticmethod
    async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
        """Render an exception as a JSON response.

        Args:
            request: FastAPI request object
            exc: Exception that occurred

        Returns:
            JSONResponse with error details
        """
        if isinstance(exc, AccessDeniedException):
            # Denials are expected outcomes; keep logs quiet unless it is a 500.
            if exc.status_code >= 500:
                logger.error(
                    f"Guard failure on {request.method} {request.url.path}",
                    extra={"status_code": exc.status_code},
                )
            else:
                logger.debug(
                    f"Access denied [{exc.error_code}] {request.method} {request.url.path}"
                )
            return exc.result.to_response()

        if isinstance(exc, LimnAccessAPIException):
            if exc.status_code >= 500:
                logger.error(
                    f"API Error [{exc.error_code}]: {exc.message}",
                    exc_info=True,
                    extra={
                        "error_code": exc.error_code,
                        "status_code": exc.status_code,
                        "path": request.url.path,
                        "method": request.method,
                        "details": exc.details,
                    },
                )
            else:
                logger.debug(
                    f"API Error [{exc.error_code}]: {exc.message}",
                    extra={
                        "error_code": exc.error_code,
                        "status_code": exc.status_code,
                        "path": request.url.path,
                        "method": request.method,
                    },
                )

            response_data = await exc.to_dict()
            response_data["timestamp"] = _now()
            response_data["path"] = request.url.path
            return JSONResponse(status_code=exc.status_code, content=response_data)

        if isinstance(exc, ValidationError):
            logger.debug(f"Validation error: {exc}")
            error_details = [
                {
                    "field": " -> ".join(str(loc) for loc in err.get("loc", [])),
                    "type": err.get("type", "validation_error"),
                    "message": err.get("msg", "Validation failed"),
                }
                for err in exc.errors()
            ]
            return APIErrorHandler.create_error_response(
                "validation_error",
                "Validation failed",
                status_code=422,
                details={"errors": error_details},
                request=request,
            )

        if isinstance(exc, HTTPException):
            error_code = HTTP_ERROR_CODES.get(exc.status_code, "internal_error")
            detail = exc.detail
            if detail is None:
                error_message = "An error occurred"
            elif isinstance(detail, dict):
                error_message = str(
                    detail.get("message") or detail.get("error") or detail
                )
            else:
                error_message = str(detail)

            if exc.status_code >= 500:
                logger.error(
                    f"HTTP Error [{exc.status_code}]: {error_message}",
                    exc_info=True,
                    extra={"path": request.url.path, "method": request.method},
                )
            else:
                logger.debug(f"HTTP Error [{exc.status_code}]: {error_message}")

            return APIErrorHandler.create_error_response(
                error_code, error_message, status_code=exc.status_code, request=request
            )

        logger.error(
            f"Unexpected error: {type(exc).__name__}: {exc}",
            exc_info=True,
            extra={
                "error_type": type(exc).__name__,
                "path": request.url.path,
                "method": request.method,
            },
        )
        return APIErrorHandler.create_error_response(
            "internal_error",
            "An unexpected error occurred. Please contact support if this persists.",
            status_code=500,
            request=request,
        )

    @staticmethod
    def create_error_response(
        error_code: str,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        request: Optional[Request] = None,
    ) -> JSONResponse:
        """Create a standardized error response.

        Args:
            error_code: Error code identifier
            message: Error message
            status_code: HTTP status code
            details: Additional error details
            request: Optional request object for context

        Returns:
            JSONResponse with error details
        """
        response_data: Dict[str, Any] = {
            "error_code": error_code,
            "message": message,
            "timestamp": _now(),
            "status_code": status_code,
        }
        if details:
            response_data["details"] = details
        if request is not None:
            response_data["path"] = request.url.path

        return JSONResponse(status_code=status_code, content=response_data)


__all__ = ["APIErrorHandler", "HTTP_ERROR_CODES"]
