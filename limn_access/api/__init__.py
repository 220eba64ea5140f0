"""API module for limn_access.

This module provides:
- Application factory with FastAPI integration
- Authorization guard, gate and endpoints
- Response envelope handling
- Error handling
"""

from .config import ServerConfig
from .server import create_app

__all__ = [
    "ServerConfig",
    "create_app",
]
