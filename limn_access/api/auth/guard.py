"""Request-level permission guard for limn_access route handlers.

The guard resolves the current actor and applies a declared policy in a
fixed order: authentication, active account, role allow-list, then the
ANY/ALL permission check. Denials come back as :class:`GuardResult`
values; the guard itself never raises.
"""

import logging
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from limn_access.api.response import create_permission_response
from limn_access.exceptions import LimnAccessAPIException

from .entities import UserContext
from .middleware import UserContextResolver, resolve_request_user
from .pages import DEFAULT_PAGE_MAP, PagePermissionMap
from .rbac import (
    ADMIN_ROLES,
    MANAGER_ROLES,
    PermissionEvaluator,
    PermissionLike,
    RoleLike,
    default_evaluator,
)

logger = logging.getLogger(__name__)


class DenialReason(str, Enum):
    """Why a guard or gate refused access."""

    AUTHENTICATION_REQUIRED = "authentication_required"
    ACCOUNT_DISABLED = "account_disabled"
    ROLE_DENIED = "role_denied"
    PERMISSION_DENIED = "permission_denied"
    INFRASTRUCTURE_ERROR = "infrastructure_error"


DENIAL_MESSAGES = {
    DenialReason.AUTHENTICATION_REQUIRED: "Authentication required",
    DenialReason.ACCOUNT_DISABLED: "Account is disabled",
    DenialReason.ROLE_DENIED: "Insufficient role privileges",
    DenialReason.PERMISSION_DENIED: "Insufficient permissions",
    DenialReason.INFRASTRUCTURE_ERROR: "Internal server error",
}

DENIAL_STATUS_CODES = {
    DenialReason.AUTHENTICATION_REQUIRED: 401,
    DenialReason.ACCOUNT_DISABLED: 403,
    DenialReason.ROLE_DENIED: 403,
    DenialReason.PERMISSION_DENIED: 403,
    DenialReason.INFRASTRUCTURE_ERROR: 500,
}


class GuardResult(BaseModel):
    """Outcome of a guard check."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    user: Optional[UserContext] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    reason: Optional[DenialReason] = None

    @classmethod
    def allow(cls, user: UserContext) -> "GuardResult":
        return cls(valid=True, user=user, status_code=200)

    @classmethod
    def deny(
        cls, reason: DenialReason, user: Optional[UserContext] = None
    ) -> "GuardResult":
        return cls(
            valid=False,
            user=user,
            error=DENIAL_MESSAGES[reason],
            status_code=DENIAL_STATUS_CODES[reason],
            reason=reason,
        )

    def to_response(self, data: Optional[Any] = None) -> JSONResponse:
        """Render the result as the JSON envelope with its status code."""
        if self.valid:
            return create_permission_response(True, "Access granted", 200, data)
        return create_permission_response(
            False,
            self.error or "Forbidden",
            self.status_code or 403,
            data if data is not None else {"reason": self.reason.value if self.reason else None},
        )


class RequestGuard:
    """Applies a permission policy to the actor behind a request.

    Args:
        resolver: Builds the actor context from the request
        evaluator: Evaluates permissions against an injected matrix
        pages: Supplies default permissions when a caller passes none
    """

    def __init__(
        self,
        resolver: Optional[UserContextResolver] = None,
        evaluator: Optional[PermissionEvaluator] = None,
        pages: Optional[PagePermissionMap] = None,
    ):
        self.evaluator = evaluator or default_evaluator
        self.resolver = resolver or UserContextResolver(matrix=self.evaluator.matrix)
        self.pages = pages if pages is not None else DEFAULT_PAGE_MAP

    def evaluate(
        self,
        user: Optional[UserContext],
        required_permissions: Sequence[PermissionLike],
        *,
        require_all: bool = False,
        allowed_roles: Optional[Iterable[RoleLike]] = None,
        enforce_active: bool = True,
    ) -> GuardResult:
        """Apply the policy to an already resolved actor."""
        if user is None:
            return GuardResult.deny(DenialReason.AUTHENTICATION_REQUIRED)

        if enforce_active and not user.is_active:
            return GuardResult.deny(DenialReason.ACCOUNT_DISABLED, user)

        if allowed_roles is not None and not self.evaluator.has_role(
            user.role, allowed_roles
        ):
            return GuardResult.deny(DenialReason.ROLE_DENIED, user)

        if require_all:
            granted = self.evaluator.has_all_permissions(user.role, required_permissions)
        else:
            granted = self.evaluator.has_any_permission(user.role, required_permissions)
        if not granted:
            return GuardResult.deny(DenialReason.PERMISSION_DENIED, user)

        return GuardResult.allow(user)

    async def require_permissions(
        self,
        request: Request,
        required_permissions: Optional[Sequence[PermissionLike]] = None,
        *,
        require_all: bool = False,
        allowed_roles: Optional[Iterable[RoleLike]] = None,
        enforce_active: bool = True,
    ) -> GuardResult:
        """Resolve the actor behind ``request`` and check it against a policy.

        Args:
            request: Incoming request, used only to resolve the actor
            required_permissions: Permissions to check. None means "use the
                page map entry for the request path"; an empty list is
                vacuously satisfied.
            require_all: Require every permission instead of any one
            allowed_roles: Optional role allow-list, checked before permissions
            enforce_active: Reject disabled accounts

        Returns:
            The structured allow/deny result
        """
        try:
            user = await resolve_request_user(request, self.resolver)
        except Exception as e:
            logger.error(
                f"Permission validation error: {e}",
                exc_info=True,
                extra={"path": request.url.path, "method": request.method},
            )
            return GuardResult.deny(DenialReason.INFRASTRUCTURE_ERROR)

        if required_permissions is None:
            required_permissions = self.pages.permissions_for_path(request.url.path)

        result = self.evaluate(
            user,
            required_permissions,
            require_all=require_all,
            allowed_roles=list(allowed_roles) if allowed_roles is not None else None,
            enforce_active=enforce_active,
        )
        if not result.valid:
            logger.debug(
                f"Access denied [{result.reason.value if result.reason else ''}] "
                f"{request.method} {request.url.path}",
                extra={"user_id": user.id if user else None},
            )
        return result


default_guard = RequestGuard()


async def require_permissions(
    request: Request,
    required_permissions: Optional[Sequence[PermissionLike]] = None,
    *,
    require_all: bool = False,
    allowed_roles: Optional[Iterable[RoleLike]] = None,
    enforce_active: bool = True,
    guard: Optional[RequestGuard] = None,
) -> GuardResult:
    """Check a request with the given guard, or the app's, or the default one."""
    guard = guard or guard_for_request(request)
    return await guard.require_permissions(
        request,
        required_permissions,
        require_all=require_all,
        allowed_roles=allowed_roles,
        enforce_active=enforce_active,
    )


class AccessDeniedException(LimnAccessAPIException):
    """Raised by the FastAPI dependency adapter when a guard check fails."""

    status_code = 403
    error_code = "access_denied"

    def __init__(self, result: GuardResult):
        self.result = result
        super().__init__(
            result.error,
            status_code=result.status_code or 403,
            error_code=result.reason.value if result.reason else None,
        )


def guard_for_request(request: Request) -> RequestGuard:
    app = request.scope.get("app")
    guard = getattr(getattr(app, "state", None), "guard", None)
    if isinstance(guard, RequestGuard):
        return guard
    return default_guard


def requires(
    *permissions: PermissionLike,
    require_all: bool = False,
    allowed_roles: Optional[Iterable[RoleLike]] = None,
    enforce_active: bool = True,
    use_page_defaults: bool = False,
) -> Callable[[Request], Any]:
    """Build a FastAPI dependency enforcing a permission policy.

    Usage:
        @router.get("/orders")
        async def list_orders(user: UserContext = Depends(requires("orders.read"))):
            ...

    Returns:
        Dependency returning the :class:`UserContext` when access is granted

    Raises:
        AccessDeniedException: From the dependency, when the guard denies
    """
    required: Optional[List[PermissionLike]] = (
        None if use_page_defaults and not permissions else list(permissions)
    )
    roles = list(allowed_roles) if allowed_roles is not None else None

    async def dependency(request: Request) -> UserContext:
        result = await require_permissions(
            request,
            required,
            require_all=require_all,
            allowed_roles=roles,
            enforce_active=enforce_active,
        )
        if not result.valid or result.user is None:
            raise AccessDeniedException(result)
        return result.user

    return dependency


def admin_required() -> Callable[[Request], Any]:
    """Dependency restricting a route to super_admin and admin."""
    return requires(allowed_roles=ADMIN_ROLES)


def manager_required() -> Callable[[Request], Any]:
    """Dependency restricting a route to manager and above."""
    return requires(allowed_roles=MANAGER_ROLES)


__all__ = [
    "DenialReason",
    "DENIAL_MESSAGES",
    "DENIAL_STATUS_CODES",
    "GuardResult",
    "RequestGuard",
    "default_guard",
    "guard_for_request",
    "require_permissions",
    "AccessDeniedException",
    "requires",
    "admin_required",
    "manager_required",
]
