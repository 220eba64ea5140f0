"""
Test suite for the request guard and its FastAPI dependency adapter.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import Request

from limn_access.api.auth.entities import (
    SessionResolutionError,
    SessionUser,
    build_user_context,
)
from limn_access.api.auth.guard import (
    AccessDeniedException,
    DenialReason,
    GuardResult,
    RequestGuard,
    admin_required,
    default_guard,
    guard_for_request,
    manager_required,
    require_permissions,
    requires,
)
from limn_access.api.auth.middleware import UserContextResolver
from limn_access.api.auth.pages import PagePermissionMap
from limn_access.api.auth.rbac import PermissionEvaluator, RolePermissionMatrix


def make_request(path="/api/orders", state=None, guard=None):
    request = MagicMock(spec=Request)
    request.url.path = path
    request.method = "GET"
    request.headers = {}
    request.cookies = {}
    request.state = state if state is not None else SimpleNamespace()
    request.scope = {"app": SimpleNamespace(state=SimpleNamespace(guard=guard))}
    return request


def make_guard(session_user=None, side_effect=None, **kwargs):
    session_resolver = AsyncMock(return_value=session_user, side_effect=side_effect)
    return RequestGuard(
        resolver=UserContextResolver(session_resolver=session_resolver), **kwargs
    )


def body_of(response):
    return json.loads(response.body)


class TestGuardEvaluate:
    """Test the synchronous policy check over a resolved actor."""

    def setup_method(self):
        """Set up guard."""
        self.guard = RequestGuard()

    def test_no_actor_is_unauthenticated(self):
        """Test a missing actor yields 401."""
        result = self.guard.evaluate(None, ["orders.read"])

        assert not result.valid
        assert result.status_code == 401
        assert result.reason is DenialReason.AUTHENTICATION_REQUIRED
        assert result.error == "Authentication required"

    def test_disabled_checked_before_permissions(self):
        """Test a disabled employee is rejected as disabled, not unpermitted."""
        user = build_user_context(
            SessionUser(id="u1", role="employee", is_active=False)
        )

        result = self.guard.evaluate(user, ["finance.delete"])

        assert result.status_code == 403
        assert result.reason is DenialReason.ACCOUNT_DISABLED
        assert result.error == "Account is disabled"

    def test_enforce_active_can_be_disabled(self):
        """Test the active check is skipped when not enforced."""
        user = build_user_context(SessionUser(id="u1", role="manager", is_active=False))

        result = self.guard.evaluate(user, ["orders.read"], enforce_active=False)

        assert result.valid

    def test_role_checked_before_permissions(self):
        """Test the role allow-list is applied first."""
        user = build_user_context(SessionUser(id="u1", role="employee"))

        result = self.guard.evaluate(
            user, ["orders.read"], allowed_roles=["admin", "manager"]
        )

        assert result.status_code == 403
        assert result.reason is DenialReason.ROLE_DENIED
        assert result.error == "Insufficient role privileges"

    def test_permission_denied(self):
        """Test a missing permission yields 403."""
        user = build_user_context(SessionUser(id="u1", role="client"))

        result = self.guard.evaluate(user, ["finance.read"])

        assert result.status_code == 403
        assert result.reason is DenialReason.PERMISSION_DENIED
        assert result.error == "Insufficient permissions"
        assert result.user is user

    def test_allowed(self):
        """Test a manager may read orders."""
        user = build_user_context(SessionUser(id="u1", role="manager"))

        result = self.guard.evaluate(user, ["orders.read"])

        assert result.valid
        assert result.user is user
        assert result.error is None
        assert result.status_code == 200

    def test_require_all(self):
        """Test ALL semantics through the guard."""
        user = build_user_context(SessionUser(id="u1", role="lead"))

        any_result = self.guard.evaluate(user, ["finance.read", "finance.view_sensitive"])
        all_result = self.guard.evaluate(
            user, ["finance.read", "finance.view_sensitive"], require_all=True
        )

        assert any_result.valid
        assert not all_result.valid

    def test_empty_requirement_admits_any_active_actor(self):
        """Test an explicit empty list is vacuously satisfied."""
        user = build_user_context(SessionUser(id="u1", role="client"))

        assert self.guard.evaluate(user, []).valid

    def test_injected_matrix(self):
        """Test the guard enforces the evaluator's matrix."""
        guard = RequestGuard(
            evaluator=PermissionEvaluator(
                RolePermissionMatrix({"viewer": ["finance.delete"]})
            )
        )
        user = build_user_context(SessionUser(id="u1", role="viewer"))

        assert guard.evaluate(user, ["finance.delete"]).valid
        assert not guard.evaluate(user, ["customers.read"]).valid


class TestRequirePermissions:
    """Test resolving and checking a request."""

    @pytest.mark.asyncio
    async def test_allowed_request(self):
        """Test an authorized request carries the actor context."""
        guard = make_guard(SessionUser(id="u1", email="m@limn.test", role="manager"))

        result = await guard.require_permissions(make_request(), ["orders.read"])

        assert result.valid
        assert result.user.id == "u1"
        assert result.user.role == "manager"

    @pytest.mark.asyncio
    async def test_unauthenticated_request(self):
        """Test no session yields 401."""
        guard = make_guard(None)

        result = await guard.require_permissions(make_request(), ["orders.read"])

        assert result.status_code == 401
        assert result.user is None

    @pytest.mark.asyncio
    async def test_resolver_failure_is_500(self):
        """Test infrastructure errors become a generic 500."""
        guard = make_guard(side_effect=ConnectionError("auth provider down"))

        result = await guard.require_permissions(make_request(), ["orders.read"])

        assert not result.valid
        assert result.status_code == 500
        assert result.reason is DenialReason.INFRASTRUCTURE_ERROR
        assert result.error == "Internal server error"
        assert "auth provider" not in result.error

    @pytest.mark.asyncio
    async def test_middleware_failure_is_500(self):
        """Test a failure recorded by the middleware is reported."""
        guard = make_guard(SessionUser(id="u1", role="admin"))
        state = SimpleNamespace(
            auth_resolved=True,
            user_context=None,
            auth_error=SessionResolutionError("boom"),
        )

        result = await guard.require_permissions(make_request(state=state), [])

        assert result.status_code == 500

    @pytest.mark.asyncio
    async def test_page_defaults_used_when_none_given(self):
        """Test the page map supplies requirements for the request path."""
        guard = make_guard(SessionUser(id="u1", role="lead"))

        ar_aging = await guard.require_permissions(
            make_request("/dashboard/ar-aging"), require_all=True
        )
        tasks = await guard.require_permissions(make_request("/dashboard/tasks/12"))

        assert not ar_aging.valid
        assert ar_aging.reason is DenialReason.PERMISSION_DENIED
        assert tasks.valid

    @pytest.mark.asyncio
    async def test_custom_page_map(self):
        """Test an injected page map replaces the defaults."""
        guard = make_guard(
            SessionUser(id="u1", role="client"),
            pages=PagePermissionMap({}, default=["finance.read"]),
        )

        result = await guard.require_permissions(make_request("/dashboard"))

        assert result.reason is DenialReason.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_module_function_uses_app_guard(self):
        """Test the app's guard is preferred over the default."""
        guard = make_guard(SessionUser(id="u1", role="viewer"))

        result = await require_permissions(
            make_request(guard=guard), ["customers.read"]
        )

        assert result.valid
        assert result.user.id == "u1"


class TestGuardResult:
    """Test result rendering."""

    def test_denial_response_envelope(self):
        """Test a denial renders the JSON envelope with its status."""
        response = GuardResult.deny(DenialReason.PERMISSION_DENIED).to_response()

        body = body_of(response)
        assert response.status_code == 403
        assert body["success"] is False
        assert body["message"] == "Insufficient permissions"
        assert body["data"] == {"reason": "permission_denied"}
        assert "timestamp" in body

    def test_unauthenticated_response(self):
        """Test 401 responses."""
        response = GuardResult.deny(DenialReason.AUTHENTICATION_REQUIRED).to_response()

        assert response.status_code == 401
        assert body_of(response)["message"] == "Authentication required"

    def test_allow_response(self):
        """Test an allowed result renders success."""
        user = build_user_context(SessionUser(id="u1", role="viewer"))

        response = GuardResult.allow(user).to_response({"ok": 1})

        body = body_of(response)
        assert response.status_code == 200
        assert body["success"] is True
        assert body["data"] == {"ok": 1}


class TestGuardForRequest:
    """Test locating the guard configured on the app."""

    def test_app_guard(self):
        """Test the app state guard is returned."""
        guard = RequestGuard()

        assert guard_for_request(make_request(guard=guard)) is guard

    def test_falls_back_to_default(self):
        """Test requests without an app guard use the default."""
        assert guard_for_request(make_request()) is default_guard


class TestRequiresDependency:
    """Test the FastAPI dependency adapter."""

    @pytest.mark.asyncio
    async def test_returns_user_when_allowed(self):
        """Test the dependency yields the actor context."""
        guard = make_guard(SessionUser(id="u1", role="manager"))
        dependency = requires("orders.read")

        user = await dependency(make_request(guard=guard))

        assert user.id == "u1"

    @pytest.mark.asyncio
    async def test_raises_with_result(self):
        """Test a denial raises AccessDeniedException carrying the result."""
        guard = make_guard(SessionUser(id="u1", role="client"))
        dependency = requires("finance.read", "finance.view_sensitive", require_all=True)

        with pytest.raises(AccessDeniedException) as exc_info:
            await dependency(make_request(guard=guard))

        exc = exc_info.value
        assert exc.status_code == 403
        assert exc.error_code == "permission_denied"
        assert exc.result.reason is DenialReason.PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_unauthenticated_raises_401(self):
        """Test the adapter keeps the guard's status code."""
        dependency = requires("orders.read")

        with pytest.raises(AccessDeniedException) as exc_info:
            await dependency(make_request(guard=make_guard(None)))

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_page_defaults(self):
        """Test use_page_defaults pulls requirements from the page map."""
        guard = make_guard(SessionUser(id="u1", role="client"))
        dependency = requires(use_page_defaults=True)

        with pytest.raises(AccessDeniedException):
            await dependency(make_request("/dashboard/finance", guard=guard))

    @pytest.mark.asyncio
    async def test_admin_required(self):
        """Test the admin-only dependency."""
        manager_guard = make_guard(SessionUser(id="u1", role="manager"))
        admin_guard = make_guard(SessionUser(id="u2", role="admin"))

        with pytest.raises(AccessDeniedException) as exc_info:
            await admin_required()(make_request(guard=manager_guard))

        assert exc_info.value.error_code == "role_denied"
        assert (await admin_required()(make_request(guard=admin_guard))).id == "u2"

    @pytest.mark.asyncio
    async def test_manager_required(self):
        """Test the manager-and-above dependency."""
        lead_guard = make_guard(SessionUser(id="u1", role="lead"))
        manager_guard = make_guard(SessionUser(id="u2", role="manager"))

        with pytest.raises(AccessDeniedException):
            await manager_required()(make_request(guard=lead_guard))

        assert (await manager_required()(make_request(guard=manager_guard))).id == "u2"
