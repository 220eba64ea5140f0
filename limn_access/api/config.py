"""Configuration models for the limn_access server."""

from typing import List, Optional

from pydantic import BaseModel, Field


class ServerConfig(BaseModel):
    """Configuration model for the limn_access application.

    Attributes:
        title: API title
        description: API description
        version: API version
        debug: Enable debug mode
        docs_url: OpenAPI documentation URL
        redoc_url: ReDoc documentation URL
        cors_enabled: Enable CORS middleware
        cors_origins: Allowed CORS origins
        log_level: Logging level
        exempt_paths: Paths the authentication middleware skips
    """

    title: str = "Limn Access API"
    description: str = "Role-based access control for the Limn dashboard and portal"
    version: str = "0.1.0"
    debug: bool = False

    docs_url: Optional[str] = "/docs"
    redoc_url: Optional[str] = "/redoc"

    cors_enabled: bool = True
    cors_origins: List[str] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )

    log_level: str = "info"

    exempt_paths: Optional[List[str]] = None
