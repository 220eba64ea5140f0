"""Exception hierarchy for limn_access.

Authorization denials are not exceptions; they are returned as values by the
evaluator, guard and gate. The classes here cover infrastructure faults and
the HTTP adapter that turns a denied guard result into a response.
"""

from typing import Any, Dict, Optional


class LimnAccessException(Exception):
    """Base class for all limn_access errors."""


class LimnAccessAPIException(LimnAccessException):
    """Error that maps onto an HTTP response."""

    status_code: int = 500
    error_code: str = "internal_error"
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    async def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            data["details"] = self.details
        return data


class ConfigurationError(LimnAccessException):
    """Raised for invalid authorization configuration."""


__all__ = [
    "LimnAccessException",
    "LimnAccessAPIException",
    "ConfigurationError",
]
