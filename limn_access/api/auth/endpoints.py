"""Authorization endpoints for limn_access.

These routes expose the caller's resolved permissions and the static
authorization tables to the dashboard and client portal.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from limn_access.api.response import create_permission_response

from .entities import UserContext
from .guard import RequestGuard, guard_for_request, requires
from .rbac import ADMIN_ROLES, Permission, Role

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/api/auth", tags=["Authorization"])
admin_router = APIRouter(prefix="/api/admin", tags=["Administration"])


class AccessCheckRequest(BaseModel):
    """Policy to evaluate for the calling actor."""

    permissions: Optional[List[str]] = Field(
        default=None,
        description="Permissions to check; omit to use the page defaults for `path`",
    )
    roles: Optional[List[str]] = Field(default=None, description="Role allow-list")
    require_all: bool = Field(default=False)
    path: Optional[str] = Field(
        default=None, description="Page whose default permissions apply"
    )


@auth_router.get("/me")
async def get_me(user: UserContext = Depends(requires())) -> JSONResponse:
    """Return the caller's actor context, including derived permissions."""
    return create_permission_response(
        True, "Current user context", 200, user.to_public_dict()
    )


@auth_router.post("/check")
async def check_access(payload: AccessCheckRequest, request: Request) -> JSONResponse:
    """Evaluate a policy for the caller without enforcing it.

    Unresolvable callers get the guard's 401/500 response; resolvable
    callers always get 200 with the decision in ``data``.
    """
    guard: RequestGuard = guard_for_request(request)

    required = payload.permissions
    if required is None:
        required = [
            p.value for p in guard.pages.permissions_for_path(payload.path or request.url.path)
        ]

    result = await guard.require_permissions(
        request,
        required,
        require_all=payload.require_all,
        allowed_roles=payload.roles,
        enforce_active=True,
    )
    if result.user is None:
        return result.to_response()

    return create_permission_response(
        True,
        "Access granted" if result.valid else (result.error or "Access denied"),
        200,
        {
            "valid": result.valid,
            "reason": result.reason.value if result.reason else None,
            "required_permissions": required,
            "require_all": payload.require_all,
        },
    )


@auth_router.get("/page-permissions")
async def get_page_permissions(
    request: Request, path: str = Query(..., description="Dashboard page path")
) -> JSONResponse:
    """Default permissions required to view a dashboard page."""
    guard = guard_for_request(request)
    return create_permission_response(
        True,
        "Page permissions",
        200,
        {
            "path": path,
            "matched": guard.pages.match(path),
            "permissions": [p.value for p in guard.pages.permissions_for_path(path)],
        },
    )


@admin_router.get("/permissions")
async def get_permission_matrix(
    request: Request,
    user: UserContext = Depends(
        requires(Permission.USERS_MANAGE_ROLES, allowed_roles=ADMIN_ROLES)
    ),
) -> JSONResponse:
    """Return the role-permission matrix in effect."""
    matrix = guard_for_request(request).evaluator.matrix
    logger.info(
        "Permission matrix viewed",
        extra={"user_id": user.id, "user_email": user.email},
    )
    return create_permission_response(
        True,
        "Role permission matrix",
        200,
        {
            "roles": [role.value for role in Role],
            "permissions": [p.value for p in Permission],
            "matrix": matrix.as_dict(),
        },
    )


__all__ = ["auth_router", "admin_router", "AccessCheckRequest"]
