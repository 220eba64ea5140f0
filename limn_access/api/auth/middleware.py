"""Session resolution and authentication middleware for limn_access.

This module turns ambient request state (a bearer token or session cookie)
into a :class:`UserContext`. It decides who the actor is; whether the actor
may do something is left to the guard and gate.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union, cast

import jwt
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from typing_extensions import override

from limn_access.exceptions import ConfigurationError

from .entities import (
    InvalidCredentialsError,
    SessionExpiredError,
    SessionResolutionError,
    SessionUser,
    UserContext,
    build_user_context,
)
from .rbac import Role, RoleLike, RolePermissionMatrix, parse_role

logger = logging.getLogger(__name__)


class AuthConfig:
    """Configuration for session resolution."""

    def __init__(self):
        # JWT Configuration
        self.jwt_secret_key: str = os.getenv(
            "LIMN_JWT_SECRET_KEY", "limn-access-development-secret-change-me"
        )
        self.jwt_algorithm: str = os.getenv("LIMN_JWT_ALGORITHM", "HS256")
        self.jwt_expiration_hours: int = int(
            os.getenv("LIMN_JWT_EXPIRATION_HOURS", "24")
        )

        # Session transport
        self.session_cookie_name: str = os.getenv(
            "LIMN_SESSION_COOKIE_NAME", "limn-access-token"
        )

        # Actor defaults
        self.default_role: str = os.getenv("LIMN_DEFAULT_ROLE", Role.VIEWER.value)
        self.super_admin_emails: List[str] = [
            email.strip()
            for email in os.getenv("LIMN_SUPER_ADMIN_EMAILS", "").split(",")
            if email.strip()
        ]

        self.exempt_paths: List[str] = [
            "/",
            "/docs",
            "/redoc",
            "/openapi.json",
            "/health",
        ]

    def resolved_default_role(self) -> Role:
        role = parse_role(self.default_role)
        if role is None:
            raise ConfigurationError(
                f"LIMN_DEFAULT_ROLE is not a known role: {self.default_role!r}"
            )
        return role


# Global auth config instance
auth_config = AuthConfig()


def configure_auth(**kwargs) -> None:
    """Configure authentication settings.

    Args:
        **kwargs: Configuration parameters to override
    """
    for key, value in kwargs.items():
        if hasattr(auth_config, key):
            setattr(auth_config, key, value)
        else:
            logger.warning(f"Ignoring unknown auth setting: {key}")


class JWTManager:
    """JWT token management utilities."""

    @staticmethod
    def create_access_token(
        user_id: str,
        email: str = "",
        role: Optional[RoleLike] = None,
        *,
        is_active: Optional[bool] = None,
        department_id: Optional[str] = None,
        expires_delta: Optional[timedelta] = None,
        config: Optional[AuthConfig] = None,
    ) -> str:
        """Create a JWT access token.

        The claims mirror a hosted-auth user record: account attributes live
        under ``user_metadata``.

        Args:
            user_id: Account identifier, stored as ``sub``
            email: Account email
            role: Role stored in the account metadata
            is_active: Account active flag, omitted when None
            department_id: Owning department for row-level checks
            expires_delta: Custom expiration time
            config: Settings to sign with, defaults to the global config

        Returns:
            JWT token string
        """
        config = config or auth_config
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(hours=config.jwt_expiration_hours))

        metadata: Dict[str, Any] = {}
        if role is not None:
            metadata["role"] = role.value if isinstance(role, Role) else role
        if is_active is not None:
            metadata["is_active"] = is_active
        if department_id is not None:
            metadata["department_id"] = department_id

        payload = {
            "sub": user_id,
            "email": email,
            "user_metadata": metadata,
            "exp": expire,
            "iat": now,
            "type": "access",
        }

        return cast(
            str,
            jwt.encode(payload, config.jwt_secret_key, algorithm=config.jwt_algorithm),
        )

    @staticmethod
    def verify_token(token: str, config: Optional[AuthConfig] = None) -> Dict[str, Any]:
        """Verify and decode a JWT token.

        Raises:
            SessionExpiredError: If the token has expired
            InvalidCredentialsError: If the token is invalid
        """
        config = config or auth_config
        try:
            payload = jwt.decode(
                token,
                config.jwt_secret_key,
                algorithms=[config.jwt_algorithm],
            )
            return cast(Dict[str, Any], payload)
        except jwt.ExpiredSignatureError:
            raise SessionExpiredError("Token has expired")
        except jwt.InvalidTokenError:
            raise InvalidCredentialsError("Invalid token")


SessionResolver = Callable[[Request], Awaitable[Optional[SessionUser]]]


def _claim_str(value: Any) -> Optional[str]:
    """Coerce a scalar claim to a string; missing values stay None."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return str(value)


class JWTSessionResolver:
    """Resolve the session user from a bearer token or session cookie."""

    def __init__(self, config: Optional[AuthConfig] = None):
        self._config = config

    @property
    def config(self) -> AuthConfig:
        return self._config or auth_config

    def _extract_token(self, request: Request) -> Optional[str]:
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            return auth_header[7:].strip() or None
        return request.cookies.get(self.config.session_cookie_name)

    async def __call__(self, request: Request) -> Optional[SessionUser]:
        token = self._extract_token(request)
        if not token:
            return None

        try:
            payload = JWTManager.verify_token(token, self.config)
        except (InvalidCredentialsError, SessionExpiredError) as e:
            logger.info(f"Rejected session token: {e}")
            return None

        if payload.get("type", "access") != "access" or not payload.get("sub"):
            return None

        metadata = payload.get("user_metadata")
        if not isinstance(metadata, dict):
            metadata = {}
        is_active = metadata.get("is_active")
        return SessionUser(
            id=str(payload["sub"]),
            email=_claim_str(payload.get("email")) or "",
            role=_claim_str(metadata.get("role")),
            is_active=is_active if isinstance(is_active, bool) else None,
            department_id=_claim_str(metadata.get("department_id")),
        )


class UserContextResolver:
    """Build the :class:`UserContext` for a request.

    Wraps a session resolver and the matrix used to expand roles. Any failure
    inside the session resolver surfaces as :class:`SessionResolutionError`.
    """

    def __init__(
        self,
        session_resolver: Optional[SessionResolver] = None,
        matrix: Optional[RolePermissionMatrix] = None,
        config: Optional[AuthConfig] = None,
    ):
        self.session_resolver = session_resolver or JWTSessionResolver(config)
        self.matrix = matrix
        self._config = config

    @property
    def config(self) -> AuthConfig:
        return self._config or auth_config

    async def resolve(self, request: Request) -> Optional[UserContext]:
        try:
            session_user = await self.session_resolver(request)
        except SessionResolutionError:
            raise
        except Exception as e:
            raise SessionResolutionError(
                f"Session lookup failed: {type(e).__name__}: {e}"
            ) from e

        if session_user is None:
            return None

        return build_user_context(
            session_user,
            self.matrix,
            default_role=self.config.resolved_default_role(),
            super_admin_emails=self.config.super_admin_emails,
        )


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Resolve the actor once per request and attach it to ``request.state``.

    The middleware never blocks a request. A missing actor is stored as
    None; a resolver or configuration failure is logged and stored on
    ``request.state.auth_error`` so the guard can report it.
    """

    def __init__(
        self,
        app,
        resolver: Optional[UserContextResolver] = None,
        exempt_paths: Optional[List[str]] = None,
    ):
        super().__init__(app)
        self.resolver = resolver or UserContextResolver()
        self.exempt_paths = (
            exempt_paths if exempt_paths is not None else self.resolver.config.exempt_paths
        )

    def _is_exempt(self, path: str) -> bool:
        for exempt_path in self.exempt_paths:
            if exempt_path == "/":
                if path == "/":
                    return True
            elif path == exempt_path or path.startswith(exempt_path.rstrip("/") + "/"):
                return True
        return False

    @override
    async def dispatch(self, request: Request, call_next):
        """Process request through authentication middleware."""
        if self._is_exempt(request.url.path):
            return await call_next(request)

        user_context: Optional[UserContext] = None
        try:
            user_context = await self.resolver.resolve(request)
        except (SessionResolutionError, ConfigurationError) as e:
            logger.error(
                f"Failed to resolve user context: {e}",
                exc_info=True,
                extra={"path": request.url.path, "method": request.method},
            )
            request.state.auth_error = e

        request.state.user_context = user_context
        request.state.auth_resolved = True
        return await call_next(request)


def get_current_user(request: Request) -> Optional[UserContext]:
    """Get the user context the middleware attached, if any."""
    return getattr(request.state, "user_context", None)


async def resolve_request_user(
    request: Request, resolver: Optional[UserContextResolver] = None
) -> Union[UserContext, None]:
    """Return the request's actor, reusing the middleware's result when present.

    Raises:
        SessionResolutionError: If resolution failed, here or in the middleware
    """
    state = request.state
    if getattr(state, "auth_resolved", False):
        error = getattr(state, "auth_error", None)
        if error is not None:
            raise error
        return getattr(state, "user_context", None)
    return await (resolver or UserContextResolver()).resolve(request)


__all__ = [
    "AuthConfig",
    "auth_config",
    "configure_auth",
    "JWTManager",
    "SessionResolver",
    "JWTSessionResolver",
    "UserContextResolver",
    "AuthenticationMiddleware",
    "get_current_user",
    "resolve_request_user",
]
