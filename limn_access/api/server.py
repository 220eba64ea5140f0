"""Application factory for the limn_access API.

Every collaborator (session resolver, permission matrix, page map) can be
passed in, so tests and alternate deployments never patch module state.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from limn_access.api.auth.endpoints import admin_router, auth_router
from limn_access.api.auth.guard import RequestGuard
from limn_access.api.auth.middleware import (
    AuthConfig,
    AuthenticationMiddleware,
    SessionResolver,
    UserContextResolver,
)
from limn_access.api.auth.pages import PagePermissionMap
from limn_access.api.auth.rbac import PermissionEvaluator, RolePermissionMatrix
from limn_access.api.components.error_handler import APIErrorHandler
from limn_access.api.components.logging_config import LoggingConfigurator
from limn_access.api.config import ServerConfig
from limn_access.exceptions import LimnAccessAPIException

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[ServerConfig] = None,
    *,
    session_resolver: Optional[SessionResolver] = None,
    matrix: Optional[RolePermissionMatrix] = None,
    pages: Optional[PagePermissionMap] = None,
    auth_settings: Optional[AuthConfig] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """Create a configured FastAPI application.

    Args:
        config: Server configuration
        session_resolver: Async callable resolving the session user of a
            request; defaults to JWT bearer/cookie resolution
        matrix: Role-permission matrix to enforce
        pages: Page permission map used for default requirements
        auth_settings: Authentication settings, the global ones by default
        configure_logging: Install the package log handler

    Returns:
        The application, with the guard available as ``app.state.guard``

    Raises:
        ConfigurationError: If the configured default role is not a known role
    """
    config = config or ServerConfig()
    if configure_logging:
        LoggingConfigurator.configure(config.log_level)

    evaluator = PermissionEvaluator(matrix)
    resolver = UserContextResolver(
        session_resolver=session_resolver,
        matrix=evaluator.matrix,
        config=auth_settings,
    )
    resolver.config.resolved_default_role()
    guard = RequestGuard(resolver=resolver, evaluator=evaluator, pages=pages)

    app = FastAPI(
        title=config.title,
        description=config.description,
        version=config.version,
        docs_url=config.docs_url,
        redoc_url=config.redoc_url,
        debug=config.debug,
    )
    app.state.guard = guard

    @app.get("/health", tags=["System"])
    async def health_check() -> dict:
        return {"status": "healthy", "message": "API is running fine!"}

    app.include_router(auth_router)
    app.include_router(admin_router)

    app.add_exception_handler(LimnAccessAPIException, APIErrorHandler.handle_exception)
    app.add_exception_handler(StarletteHTTPException, APIErrorHandler.handle_exception)
    app.add_exception_handler(Exception, APIErrorHandler.handle_exception)

    app.add_middleware(
        AuthenticationMiddleware,
        resolver=resolver,
        exempt_paths=config.exempt_paths,
    )
    if config.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    logger.debug(f"Created {config.title} v{config.version}")
    return app


def run(host: str = "0.0.0.0", port: int = 8000, **kwargs: Any) -> None:
    """Serve the default application with uvicorn."""
    import uvicorn

    uvicorn.run(create_app(**kwargs), host=host, port=port)


__all__ = ["create_app", "run"]
