"""Authentication entities for limn_access.

This module provides the actor records produced by session resolution and
the per-request :class:`UserContext` every enforcement point works from.
Contexts are transient: they are built at the start of a request or render
and are never persisted here.
"""

from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from limn_access.exceptions import LimnAccessException

from .rbac import (
    DEFAULT_MATRIX,
    Permission,
    Role,
    RolePermissionMatrix,
    parse_role,
)


class SessionUser(BaseModel):
    """Actor record as returned by the external session/auth store."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Account identifier")
    email: str = Field(default="")
    role: Optional[str] = Field(
        default=None, description="Role as stored in account metadata"
    )
    is_active: Optional[bool] = Field(
        default=None, description="False only when the account is disabled"
    )
    department_id: Optional[str] = Field(default=None)


class UserContext(BaseModel):
    """Resolved identity and authorization attributes for one request."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str = ""
    role: str = Field(..., description="Role tag, possibly unrecognised")
    permissions: List[Permission] = Field(default_factory=list)
    is_active: bool = True
    department_id: Optional[str] = None

    @property
    def resolved_role(self) -> Optional[Role]:
        return parse_role(self.role)

    def has_permission(self, permission: Any) -> bool:
        return permission in self.permissions

    def has_role(self, roles: Iterable[Any]) -> bool:
        resolved = self.resolved_role
        return resolved is not None and any(parse_role(r) is resolved for r in roles)

    def to_public_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "permissions": [p.value for p in self.permissions],
            "is_active": self.is_active,
            "department_id": self.department_id,
        }


def build_user_context(
    session_user: SessionUser,
    matrix: Optional[RolePermissionMatrix] = None,
    *,
    default_role: Role = Role.VIEWER,
    super_admin_emails: Iterable[str] = (),
) -> UserContext:
    """Derive a :class:`UserContext` from a session record.

    Args:
        session_user: Record returned by the session resolver
        matrix: Matrix used to expand the role into permissions
        default_role: Role assumed when the account carries none
        super_admin_emails: Owner accounts always promoted to super_admin

    Returns:
        The actor context. An unrecognised stored role is kept as-is and
        carries no permissions.
    """
    matrix = matrix if matrix is not None else DEFAULT_MATRIX

    role = session_user.role or default_role.value
    owners = {email.strip().lower() for email in super_admin_emails if email}
    if session_user.email and session_user.email.lower() in owners:
        role = Role.SUPER_ADMIN.value

    permissions = sorted(matrix.permissions_for(role), key=lambda p: p.value)

    return UserContext(
        id=session_user.id,
        email=session_user.email or "",
        role=role,
        permissions=permissions,
        is_active=session_user.is_active is not False,
        department_id=session_user.department_id,
    )


class AuthenticationError(LimnAccessException):
    """Base class for credential problems."""


class InvalidCredentialsError(AuthenticationError):
    """Token is malformed or signed with the wrong key."""


class SessionExpiredError(AuthenticationError):
    """Token has expired."""


class SessionResolutionError(LimnAccessException):
    """The session store could not be consulted.

    Distinct from a missing or invalid session, which resolves to no actor.
    """


__all__ = [
    "SessionUser",
    "UserContext",
    "build_user_context",
    "AuthenticationError",
    "InvalidCredentialsError",
    "SessionExpiredError",
    "SessionResolutionError",
]
