"""Response handling for limn_access API.

Guarded routes answer with a stable ``{success, message, data, timestamp}``
envelope and the HTTP status chosen by the guard.
"""

from .formatter import create_permission_response, format_response
from .types import PermissionResponse

__all__ = [
    "format_response",
    "create_permission_response",
    "PermissionResponse",
]
