"""
Test suite for session resolution and the authentication middleware.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest
from fastapi import Request

from limn_access.api.auth.entities import (
    InvalidCredentialsError,
    SessionExpiredError,
    SessionResolutionError,
    SessionUser,
    build_user_context,
)
from limn_access.api.auth.middleware import (
    AuthConfig,
    AuthenticationMiddleware,
    JWTManager,
    JWTSessionResolver,
    UserContextResolver,
    auth_config,
    configure_auth,
    get_current_user,
    resolve_request_user,
)
from limn_access.api.auth.rbac import Permission, Role, RolePermissionMatrix
from limn_access.exceptions import ConfigurationError

TEST_SECRET = "test-secret-key-for-limn-access-tests"  # pragma: allowlist secret


def make_request(path="/api/orders", headers=None, cookies=None, state=None):
    request = MagicMock(spec=Request)
    request.url.path = path
    request.method = "GET"
    request.headers = headers or {}
    request.cookies = cookies or {}
    request.state = state if state is not None else SimpleNamespace()
    return request


class TestAuthConfig:
    """Test AuthConfig functionality."""

    def test_default_config(self):
        """Test default authentication configuration."""
        config = AuthConfig()

        assert config.jwt_algorithm == "HS256"
        assert config.jwt_expiration_hours == 24
        assert config.session_cookie_name == "limn-access-token"
        assert config.default_role == "viewer"
        assert config.resolved_default_role() is Role.VIEWER
        assert "/health" in config.exempt_paths

    def test_env_overrides(self, monkeypatch):
        """Test settings are read from LIMN_ environment variables."""
        monkeypatch.setenv("LIMN_DEFAULT_ROLE", "client")
        monkeypatch.setenv("LIMN_SUPER_ADMIN_EMAILS", "owner@limn.test, ops@limn.test")

        config = AuthConfig()

        assert config.resolved_default_role() is Role.CLIENT
        assert config.super_admin_emails == ["owner@limn.test", "ops@limn.test"]

    def test_invalid_default_role(self):
        """Test a misconfigured default role is reported."""
        config = AuthConfig()
        config.default_role = "owner"

        with pytest.raises(ConfigurationError):
            config.resolved_default_role()

    def test_configure_auth(self):
        """Test overriding the global configuration."""
        original = auth_config.jwt_expiration_hours

        configure_auth(jwt_expiration_hours=2, not_a_setting=True)

        assert auth_config.jwt_expiration_hours == 2
        assert not hasattr(auth_config, "not_a_setting")

        configure_auth(jwt_expiration_hours=original)


class TestBuildUserContext:
    """Test deriving the actor context from a session record."""

    def test_permissions_derived_from_role(self):
        """Test the permission list comes from the matrix."""
        context = build_user_context(
            SessionUser(id="u1", email="a@limn.test", role="client")
        )

        assert context.resolved_role is Role.CLIENT
        assert context.permissions == [
            Permission.ORDERS_READ,
            Permission.PROJECTS_READ,
            Permission.REPORTS_READ,
        ]
        assert context.is_active is True

    def test_missing_role_uses_default(self):
        """Test accounts without a role become viewers."""
        context = build_user_context(SessionUser(id="u1"))

        assert context.role == "viewer"

    def test_owner_email_promoted(self):
        """Test configured owner accounts are super admins."""
        context = build_user_context(
            SessionUser(id="u1", email="Owner@Limn.test", role="viewer"),
            super_admin_emails=["owner@limn.test"],
        )

        assert context.resolved_role is Role.SUPER_ADMIN
        assert Permission.SYSTEM_BACKUP in context.permissions

    def test_inactive_only_when_explicit(self):
        """Test is_active defaults to True unless stored as False."""
        assert build_user_context(SessionUser(id="u", is_active=None)).is_active
        assert not build_user_context(SessionUser(id="u", is_active=False)).is_active

    def test_unknown_role_kept_without_permissions(self):
        """Test an invalid stored role is not an error."""
        context = build_user_context(SessionUser(id="u", role="owner"))

        assert context.role == "owner"
        assert context.resolved_role is None
        assert context.permissions == []

    def test_custom_matrix(self):
        """Test a custom matrix drives the derived permissions."""
        matrix = RolePermissionMatrix({"viewer": ["portal.read"]})

        context = build_user_context(SessionUser(id="u"), matrix)

        assert context.permissions == [Permission.PORTAL_READ]
        assert context.has_permission("portal.read")

    def test_public_dict(self):
        """Test the serializable view of the context."""
        context = build_user_context(
            SessionUser(id="u", email="e@limn.test", role="client", department_id="d")
        )

        data = context.to_public_dict()

        assert data["permissions"] == ["orders.read", "projects.read", "reports.read"]
        assert data["department_id"] == "d"


class TestJWTManager:
    """Test JWT token management functionality."""

    def setup_method(self):
        """Set up a dedicated config."""
        self.config = AuthConfig()
        self.config.jwt_secret_key = TEST_SECRET

    def test_create_access_token(self):
        """Test claims follow the hosted-auth user layout."""
        token = JWTManager.create_access_token(
            "user_123",
            "test@limn.test",
            Role.MANAGER,
            is_active=True,
            department_id="dept-1",
            config=self.config,
        )

        payload = jwt.decode(token, TEST_SECRET, algorithms=["HS256"])
        assert payload["sub"] == "user_123"
        assert payload["email"] == "test@limn.test"
        assert payload["user_metadata"] == {
            "role": "manager",
            "is_active": True,
            "department_id": "dept-1",
        }
        assert payload["type"] == "access"

    def test_verify_token_invalid(self):
        """Test token verification for invalid token."""
        with pytest.raises(InvalidCredentialsError):
            JWTManager.verify_token("invalid.token.here", self.config)

    def test_verify_token_wrong_key(self):
        """Test tokens signed with another key are rejected."""
        token = JWTManager.create_access_token("u", config=AuthConfig())

        with pytest.raises(InvalidCredentialsError):
            JWTManager.verify_token(token, self.config)

    def test_verify_token_expired(self):
        """Test token verification for expired token."""
        expired_token = jwt.encode(
            {
                "sub": "u",
                "exp": datetime.now(timezone.utc) - timedelta(seconds=5),
                "type": "access",
            },
            TEST_SECRET,
            algorithm="HS256",
        )

        with pytest.raises(SessionExpiredError):
            JWTManager.verify_token(expired_token, self.config)


class TestJWTSessionResolver:
    """Test resolving session users from requests."""

    def setup_method(self):
        """Set up resolver and token."""
        self.config = AuthConfig()
        self.config.jwt_secret_key = TEST_SECRET
        self.resolver = JWTSessionResolver(self.config)
        self.token = JWTManager.create_access_token(
            "user_1",
            "lead@limn.test",
            "lead",
            is_active=False,
            department_id="dept-prod",
            config=self.config,
        )

    @pytest.mark.asyncio
    async def test_bearer_header(self):
        """Test a bearer token resolves to a session user."""
        request = make_request(headers={"authorization": f"Bearer {self.token}"})

        user = await self.resolver(request)

        assert user == SessionUser(
            id="user_1",
            email="lead@limn.test",
            role="lead",
            is_active=False,
            department_id="dept-prod",
        )

    @pytest.mark.asyncio
    async def test_session_cookie(self):
        """Test the session cookie is used when no header is present."""
        request = make_request(cookies={"limn-access-token": self.token})

        user = await self.resolver(request)

        assert user is not None
        assert user.id == "user_1"

    @pytest.mark.asyncio
    async def test_no_token(self):
        """Test requests without credentials resolve to None."""
        assert await self.resolver(make_request()) is None

    @pytest.mark.asyncio
    async def test_bad_token_resolves_to_none(self):
        """Test invalid tokens mean no actor rather than an error."""
        request = make_request(headers={"authorization": "Bearer garbage"})

        assert await self.resolver(request) is None

    @pytest.mark.asyncio
    async def test_refresh_token_type_rejected(self):
        """Test only access tokens identify a session."""
        token = jwt.encode(
            {
                "sub": "u",
                "type": "refresh",
                "exp": datetime.now(timezone.utc) + timedelta(hours=1),
            },
            TEST_SECRET,
            algorithm="HS256",
        )
        request = make_request(headers={"authorization": f"Bearer {token}"})

        assert await self.resolver(request) is None

    def _bearer(self, metadata, **claims):
        payload = {
            "sub": "user_9",
            "type": "access",
            "exp": datetime.now(timezone.utc) + timedelta(hours=1),
            "user_metadata": metadata,
        }
        payload.update(claims)
        token = jwt.encode(payload, TEST_SECRET, algorithm="HS256")
        return make_request(headers={"authorization": f"Bearer {token}"})

    @pytest.mark.asyncio
    async def test_numeric_department_is_stringified(self):
        """Test numeric department keys resolve instead of failing."""
        user = await self.resolver(
            self._bearer({"role": "manager", "department_id": 42})
        )

        assert user.role == "manager"
        assert user.department_id == "42"

    @pytest.mark.asyncio
    async def test_non_string_role_kept_as_unknown(self):
        """Test a non-string role becomes an unrecognised role string."""
        user = await self.resolver(self._bearer({"role": 7}))

        context = build_user_context(user)
        assert user.role == "7"
        assert context.resolved_role is None
        assert context.permissions == []

    @pytest.mark.asyncio
    async def test_malformed_metadata_ignored(self):
        """Test odd metadata shapes and flags fall back to defaults."""
        listed = await self.resolver(self._bearer(["manager"], email=5))
        flagged = await self.resolver(self._bearer({"is_active": "no"}))

        assert listed.role is None
        assert listed.email == "5"
        assert flagged.is_active is None


class TestUserContextResolver:
    """Test context resolution and infrastructure failures."""

    @pytest.mark.asyncio
    async def test_resolves_context(self):
        """Test a session user becomes a full context."""
        session = AsyncMock(return_value=SessionUser(id="u", role="manager"))
        resolver = UserContextResolver(session_resolver=session)

        context = await resolver.resolve(make_request())

        assert context is not None
        assert context.resolved_role is Role.MANAGER
        assert Permission.ORDERS_READ in context.permissions

    @pytest.mark.asyncio
    async def test_none_session(self):
        """Test no session means no context."""
        resolver = UserContextResolver(session_resolver=AsyncMock(return_value=None))

        assert await resolver.resolve(make_request()) is None

    @pytest.mark.asyncio
    async def test_failure_wrapped(self):
        """Test store failures surface as SessionResolutionError."""
        session = AsyncMock(side_effect=ConnectionError("database unreachable"))
        resolver = UserContextResolver(session_resolver=session)

        with pytest.raises(SessionResolutionError) as exc_info:
            await resolver.resolve(make_request())

        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestAuthenticationMiddleware:
    """Test AuthenticationMiddleware functionality."""

    def setup_method(self):
        """Set up middleware with a stub resolver."""
        self.session = AsyncMock(return_value=SessionUser(id="u", role="employee"))
        self.resolver = UserContextResolver(session_resolver=self.session)
        self.middleware = AuthenticationMiddleware(MagicMock(), resolver=self.resolver)

    @pytest.mark.asyncio
    async def test_exempt_path_bypass(self):
        """Test that exempt paths skip resolution."""
        request = make_request(path="/docs")
        call_next = AsyncMock(return_value="response")

        result = await self.middleware.dispatch(request, call_next)

        assert result == "response"
        self.session.assert_not_called()
        assert get_current_user(request) is None

    @pytest.mark.asyncio
    async def test_root_exempt_only_exactly(self):
        """Test '/' exempts the root but not every path."""
        call_next = AsyncMock(return_value="response")

        await self.middleware.dispatch(make_request(path="/"), call_next)
        self.session.assert_not_called()

        await self.middleware.dispatch(make_request(path="/api/x"), call_next)
        self.session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_context_attached(self):
        """Test the resolved context is stored on request state."""
        request = make_request()
        call_next = AsyncMock(return_value="response")

        result = await self.middleware.dispatch(request, call_next)

        assert result == "response"
        assert request.state.auth_resolved is True
        assert get_current_user(request).role == "employee"
        call_next.assert_called_once_with(request)

    @pytest.mark.asyncio
    async def test_failure_recorded_not_raised(self):
        """Test resolver failures never block the request."""
        self.session.side_effect = TimeoutError("session store timeout")
        request = make_request()
        call_next = AsyncMock(return_value="response")

        result = await self.middleware.dispatch(request, call_next)

        assert result == "response"
        assert request.state.user_context is None
        assert isinstance(request.state.auth_error, SessionResolutionError)

    @pytest.mark.asyncio
    async def test_configuration_failure_recorded(self):
        """Test a default role changed to an unknown value is reported, not raised."""
        config = AuthConfig()
        config.default_role = "bogus"
        session = AsyncMock(return_value=SessionUser(id="u"))
        middleware = AuthenticationMiddleware(
            MagicMock(), resolver=UserContextResolver(session, config=config)
        )
        request = make_request()

        result = await middleware.dispatch(request, AsyncMock(return_value="response"))

        assert result == "response"
        assert isinstance(request.state.auth_error, ConfigurationError)


class TestResolveRequestUser:
    """Test reuse of middleware results."""

    @pytest.mark.asyncio
    async def test_reuses_middleware_result(self):
        """Test the middleware's context is returned without resolving again."""
        context = build_user_context(SessionUser(id="u"))
        state = SimpleNamespace(auth_resolved=True, user_context=context)
        resolver = MagicMock()

        result = await resolve_request_user(make_request(state=state), resolver)

        assert result is context
        resolver.resolve.assert_not_called()

    @pytest.mark.asyncio
    async def test_reraises_middleware_failure(self):
        """Test a failure recorded by the middleware is raised again."""
        error = SessionResolutionError("down")
        state = SimpleNamespace(auth_resolved=True, user_context=None, auth_error=error)

        with pytest.raises(SessionResolutionError):
            await resolve_request_user(make_request(state=state))

    @pytest.mark.asyncio
    async def test_resolves_without_middleware(self):
        """Test the resolver is used when the middleware did not run."""
        resolver = UserContextResolver(
            session_resolver=AsyncMock(return_value=SessionUser(id="u", role="lead"))
        )

        result = await resolve_request_user(make_request(), resolver)

        assert result.role == "lead"
