"""Authorization system for limn_access.

This module provides the role-based access control core and its two
enforcement points.

Features:
- Closed Role and Permission enums with an immutable role-permission matrix
- Pure evaluators (any/all permissions, role allow-lists, row ownership)
- Session resolution from JWT bearer tokens or a session cookie
- A non-throwing request guard and a FastAPI dependency adapter
- A UI gate that turns the same checks into renderable decisions
- Default page permissions for dashboard routes

Usage:
    from fastapi import Depends
    from limn_access.api import create_app
    from limn_access.api.auth import UserContext, requires

    app = create_app()

    @app.get("/api/orders")
    async def list_orders(user: UserContext = Depends(requires("orders.read"))):
        ...

    # Inside a handler that wants the structured result instead
    from limn_access.api.auth import require_permissions

    result = await require_permissions(request, ["finance.read"], require_all=True)
    if not result.valid:
        return result.to_response()
"""

from .entities import (
    AuthenticationError,
    InvalidCredentialsError,
    SessionExpiredError,
    SessionResolutionError,
    SessionUser,
    UserContext,
    build_user_context,
)
from .gate import (
    GateDecision,
    GatePolicy,
    Notice,
    PermissionGate,
    admin_only,
    check_access,
    conditional_render,
    evaluate_gate,
    finance_access,
    manager_only,
    production_access,
    with_permissions,
)
from .guard import (
    AccessDeniedException,
    DenialReason,
    GuardResult,
    RequestGuard,
    admin_required,
    manager_required,
    require_permissions,
    requires,
)
from .middleware import (
    AuthConfig,
    AuthenticationMiddleware,
    JWTManager,
    JWTSessionResolver,
    UserContextResolver,
    auth_config,
    configure_auth,
    get_current_user,
)
from .pages import DEFAULT_PAGE_MAP, PagePermissionMap, get_page_permissions
from .rbac import (
    DEFAULT_MATRIX,
    ROLE_HIERARCHY,
    Permission,
    PermissionEvaluator,
    Role,
    RolePermissionMatrix,
    can_access_resource,
    find_monotonicity_violations,
    has_all_permissions,
    has_any_permission,
    has_permission,
    has_role,
    permissions_for,
)

__all__ = [
    # RBAC core
    "Role",
    "Permission",
    "RolePermissionMatrix",
    "DEFAULT_MATRIX",
    "ROLE_HIERARCHY",
    "PermissionEvaluator",
    "permissions_for",
    "has_permission",
    "has_any_permission",
    "has_all_permissions",
    "has_role",
    "can_access_resource",
    "find_monotonicity_violations",
    # Actor context
    "SessionUser",
    "UserContext",
    "build_user_context",
    # Exceptions
    "AuthenticationError",
    "InvalidCredentialsError",
    "SessionExpiredError",
    "SessionResolutionError",
    "AccessDeniedException",
    # Session resolution
    "AuthConfig",
    "auth_config",
    "configure_auth",
    "JWTManager",
    "JWTSessionResolver",
    "UserContextResolver",
    "AuthenticationMiddleware",
    "get_current_user",
    # Guard
    "DenialReason",
    "GuardResult",
    "RequestGuard",
    "require_permissions",
    "requires",
    "admin_required",
    "manager_required",
    # Pages
    "PagePermissionMap",
    "DEFAULT_PAGE_MAP",
    "get_page_permissions",
    # Gate
    "GateDecision",
    "GatePolicy",
    "Notice",
    "PermissionGate",
    "evaluate_gate",
    "admin_only",
    "manager_only",
    "finance_access",
    "production_access",
    "with_permissions",
    "check_access",
    "conditional_render",
]
