"""RBAC utilities for role and permission resolution.

Roles and permissions are closed enums. The role-permission matrix is an
immutable object handed to a :class:`PermissionEvaluator`, so alternate
matrices can be injected without touching module state.
"""

import logging
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Position of an actor in the organization."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    LEAD = "lead"
    EMPLOYEE = "employee"
    CONTRACTOR = "contractor"
    CLIENT = "client"
    VIEWER = "viewer"


class Permission(str, Enum):
    """A single allowed operation, namespaced as ``<resource>.<action>``."""

    # User & account management
    USERS_CREATE = "users.create"
    USERS_READ = "users.read"
    USERS_UPDATE = "users.update"
    USERS_DELETE = "users.delete"
    USERS_MANAGE_ROLES = "users.manage_roles"

    # Customer management
    CUSTOMERS_CREATE = "customers.create"
    CUSTOMERS_READ = "customers.read"
    CUSTOMERS_UPDATE = "customers.update"
    CUSTOMERS_DELETE = "customers.delete"
    CUSTOMERS_WRITE = "customers.write"
    CUSTOMERS_EXPORT = "customers.export"

    # Financial operations
    FINANCE_READ = "finance.read"
    FINANCE_CREATE = "finance.create"
    FINANCE_UPDATE = "finance.update"
    FINANCE_DELETE = "finance.delete"
    FINANCE_APPROVE_PAYMENTS = "finance.approve_payments"
    FINANCE_VIEW_SENSITIVE = "finance.view_sensitive"

    # Order management
    ORDERS_CREATE = "orders.create"
    ORDERS_READ = "orders.read"
    ORDERS_UPDATE = "orders.update"
    ORDERS_DELETE = "orders.delete"
    ORDERS_WRITE = "orders.write"
    ORDERS_APPROVE = "orders.approve"
    ORDERS_SHIP = "orders.ship"

    # Products & inventory
    PRODUCTS_CREATE = "products.create"
    PRODUCTS_READ = "products.read"
    PRODUCTS_UPDATE = "products.update"
    PRODUCTS_WRITE = "products.write"
    PRODUCTS_DELETE = "products.delete"
    INVENTORY_MANAGE = "inventory.manage"

    # Materials catalog
    MATERIALS_CREATE = "materials.create"
    MATERIALS_READ = "materials.read"
    MATERIALS_UPDATE = "materials.update"
    MATERIALS_WRITE = "materials.write"
    MATERIALS_DELETE = "materials.delete"

    # Contracts & legal
    CONTRACTS_CREATE = "contracts.create"
    CONTRACTS_READ = "contracts.read"
    CONTRACTS_UPDATE = "contracts.update"
    CONTRACTS_WRITE = "contracts.write"
    CONTRACTS_DELETE = "contracts.delete"

    # Project management
    PROJECTS_CREATE = "projects.create"
    PROJECTS_READ = "projects.read"
    PROJECTS_UPDATE = "projects.update"
    PROJECTS_DELETE = "projects.delete"
    PROJECTS_WRITE = "projects.write"
    PROJECTS_MANAGE = "projects.manage"

    # Manufacturing & production
    PRODUCTION_READ = "production.read"
    PRODUCTION_UPDATE = "production.update"
    PRODUCTION_WRITE = "production.write"
    PRODUCTION_MANAGE = "production.manage"
    SHOP_DRAWINGS_APPROVE = "shop_drawings.approve"

    # Design & engineering
    DESIGN_CREATE = "design.create"
    DESIGN_READ = "design.read"
    DESIGN_UPDATE = "design.update"
    DESIGN_WRITE = "design.write"
    DESIGN_APPROVE = "design.approve"

    # Reports & analytics
    REPORTS_READ = "reports.read"
    REPORTS_CREATE = "reports.create"
    REPORTS_EXPORT = "reports.export"
    ANALYTICS_VIEW_ALL = "analytics.view_all"

    # Client portal management
    PORTAL_CREATE = "portal.create"
    PORTAL_READ = "portal.read"
    PORTAL_UPDATE = "portal.update"
    PORTAL_DELETE = "portal.delete"

    # System administration
    SYSTEM_CONFIGURE = "system.configure"
    SYSTEM_BACKUP = "system.backup"
    SYSTEM_AUDIT = "system.audit"
    SYSTEM_INTEGRATIONS = "system.integrations"

    # Admin operations
    ADMIN_GDPR_READ = "admin.gdpr.read"
    ADMIN_GDPR_MANAGE = "admin.gdpr.manage"
    ADMIN_CACHE_READ = "admin.cache.read"
    ADMIN_CACHE_MANAGE = "admin.cache.manage"
    ADMIN_SECURITY_READ = "admin.security.read"
    ADMIN_SECURITY_SCAN = "admin.security.scan"

    @property
    def resource(self) -> str:
        """Resource category, e.g. ``finance`` for ``finance.read``."""
        return self.value.split(".", 1)[0]


RoleLike = Union[Role, str]
PermissionLike = Union[Permission, str]

_ROLES_BY_VALUE: Dict[str, Role] = {role.value: role for role in Role}
_PERMISSIONS_BY_VALUE: Dict[str, Permission] = {p.value: p for p in Permission}


def parse_role(value: Any) -> Optional[Role]:
    """Coerce a stored role value into a :class:`Role`.

    Unknown or malformed values return None instead of raising.
    """
    if isinstance(value, Role):
        return value
    if isinstance(value, str):
        return _ROLES_BY_VALUE.get(value)
    return None


def parse_permission(value: Any) -> Optional[Permission]:
    """Coerce a stored permission value into a :class:`Permission`."""
    if isinstance(value, Permission):
        return value
    if isinstance(value, str):
        return _PERMISSIONS_BY_VALUE.get(value)
    return None


class RolePermissionMatrix:
    """Immutable mapping from every :class:`Role` to its granted permissions."""

    def __init__(self, grants: Mapping[RoleLike, Iterable[PermissionLike]]):
        """Build a matrix from hand-authored data.

        Args:
            grants: Role -> permissions. Roles left out map to no permissions.

        Raises:
            ValueError: If a role or permission is not part of the closed set
        """
        table: Dict[Role, FrozenSet[Permission]] = {role: frozenset() for role in Role}
        for raw_role, raw_permissions in grants.items():
            role = parse_role(raw_role)
            if role is None:
                raise ValueError(f"Unknown role in permission matrix: {raw_role!r}")
            resolved = []
            for raw_permission in raw_permissions:
                permission = parse_permission(raw_permission)
                if permission is None:
                    raise ValueError(
                        f"Unknown permission {raw_permission!r} granted to {role.value}"
                    )
                resolved.append(permission)
            table[role] = frozenset(resolved)
        self._table = MappingProxyType(table)

    def permissions_for(self, role: Any) -> FrozenSet[Permission]:
        """Return the permissions granted to a role.

        Total over its input: an unrecognised role string yields an empty set.
        """
        resolved = parse_role(role)
        if resolved is None:
            if role is not None:
                logger.debug(f"Unrecognised role {role!r} treated as no permissions")
            return frozenset()
        return self._table[resolved]

    def roles_granting(self, permission: PermissionLike) -> List[Role]:
        """Return the roles that hold a permission, in declaration order."""
        resolved = parse_permission(permission)
        if resolved is None:
            return []
        return [role for role in Role if resolved in self._table[role]]

    def as_dict(self) -> Dict[str, List[str]]:
        """Plain serializable form, permissions sorted for stable output."""
        return {
            role.value: sorted(p.value for p in self._table[role]) for role in Role
        }

    def __getitem__(self, role: RoleLike) -> FrozenSet[Permission]:
        return self.permissions_for(role)

    def __iter__(self):
        return iter(Role)

    def __len__(self) -> int:
        return len(self._table)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RolePermissionMatrix):
            return NotImplemented
        return dict(self._table) == dict(other._table)

    def __hash__(self) -> int:
        return hash(tuple(sorted((r.value, self._table[r]) for r in Role)))

    def __repr__(self) -> str:
        sizes = ", ".join(f"{r.value}={len(self._table[r])}" for r in Role)
        return f"RolePermissionMatrix({sizes})"


DEFAULT_ROLE_PERMISSION_MAPPING: Dict[str, List[str]] = {
    "super_admin": [
        "users.create", "users.read", "users.update", "users.delete", "users.manage_roles",
        "customers.create", "customers.read", "customers.update", "customers.delete",
        "customers.write", "customers.export",
        "finance.read", "finance.create", "finance.update", "finance.delete",
        "finance.approve_payments", "finance.view_sensitive",
        "orders.create", "orders.read", "orders.update", "orders.delete", "orders.write",
        "orders.approve", "orders.ship",
        "products.create", "products.read", "products.update", "products.write",
        "products.delete", "inventory.manage",
        "projects.create", "projects.read", "projects.update", "projects.write",
        "projects.delete", "projects.manage",
        "production.read", "production.update", "production.manage", "shop_drawings.approve",
        "design.create", "design.read", "design.update", "design.approve",
        "reports.read", "reports.create", "reports.export", "analytics.view_all",
        "system.configure", "system.backup", "system.audit", "system.integrations",
        "admin.gdpr.read", "admin.gdpr.manage", "admin.cache.read", "admin.cache.manage",
        "admin.security.read", "admin.security.scan",
    ],
    "admin": [
        "users.create", "users.read", "users.update", "users.manage_roles",
        "customers.create", "customers.read", "customers.update", "customers.delete",
        "customers.write", "customers.export",
        "finance.read", "finance.create", "finance.update", "finance.approve_payments",
        "finance.view_sensitive",
        "orders.create", "orders.read", "orders.update", "orders.delete", "orders.write",
        "orders.approve", "orders.ship",
        "products.create", "products.read", "products.update", "products.write",
        "products.delete", "inventory.manage",
        "projects.create", "projects.read", "projects.update", "projects.write",
        "projects.delete", "projects.manage",
        "production.read", "production.update", "production.manage", "shop_drawings.approve",
        "design.create", "design.read", "design.update", "design.approve",
        "reports.read", "reports.create", "reports.export", "analytics.view_all",
        "system.configure", "system.integrations",
        "admin.gdpr.read", "admin.gdpr.manage", "admin.cache.read", "admin.cache.manage",
        "admin.security.read", "admin.security.scan",
    ],
    "manager": [
        "users.read", "users.update",
        "customers.create", "customers.read", "customers.update", "customers.write",
        "customers.export",
        "finance.read", "finance.create", "finance.update", "finance.view_sensitive",
        "orders.create", "orders.read", "orders.update", "orders.write", "orders.approve",
        "orders.ship",
        "products.create", "products.read", "products.update", "products.write",
        "inventory.manage",
        "projects.create", "projects.read", "projects.update", "projects.write",
        "projects.manage",
        "production.read", "production.update", "production.manage", "shop_drawings.approve",
        "design.create", "design.read", "design.update", "design.approve",
        "reports.read", "reports.create", "reports.export", "analytics.view_all",
    ],
    "lead": [
        "users.read",
        "customers.read", "customers.update",
        "finance.read", "finance.create", "finance.update",
        "orders.create", "orders.read", "orders.update", "orders.ship",
        "products.read", "products.update", "inventory.manage",
        "projects.create", "projects.read", "projects.update",
        "production.read", "production.update",
        "design.create", "design.read", "design.update",
        "reports.read", "reports.create",
    ],
    "employee": [
        "customers.read", "customers.update",
        "finance.read", "finance.create",
        "orders.create", "orders.read", "orders.update",
        "products.read", "products.update",
        "projects.read", "projects.update",
        "production.read", "production.update",
        "design.create", "design.read", "design.update",
        "reports.read",
    ],
    "contractor": [
        "customers.read",
        "orders.read",
        "products.read",
        "projects.read",
        "production.read",
        "design.read",
        "reports.read",
    ],
    "client": [
        "orders.read",
        "projects.read",
        "reports.read",
    ],
    "viewer": [
        "customers.read",
        "orders.read",
        "products.read",
        "projects.read",
        "reports.read",
    ],
}  # fmt: skip

DEFAULT_MATRIX = RolePermissionMatrix(DEFAULT_ROLE_PERMISSION_MAPPING)

# Conventional privilege order, highest first.
ROLE_HIERARCHY: Tuple[Role, ...] = (
    Role.SUPER_ADMIN,
    Role.ADMIN,
    Role.MANAGER,
    Role.LEAD,
    Role.EMPLOYEE,
    Role.CONTRACTOR,
    Role.VIEWER,
    Role.CLIENT,
)

ADMIN_ROLES: Tuple[Role, ...] = (Role.SUPER_ADMIN, Role.ADMIN)
MANAGER_ROLES: Tuple[Role, ...] = (Role.SUPER_ADMIN, Role.ADMIN, Role.MANAGER)


def find_monotonicity_violations(
    matrix: RolePermissionMatrix,
    hierarchy: Sequence[Role] = ROLE_HIERARCHY,
) -> List[Tuple[Role, Role, Permission]]:
    """Find permissions a role holds that the role above it lacks.

    Args:
        matrix: Matrix to inspect
        hierarchy: Roles ordered from highest to lowest privilege

    Returns:
        ``(higher_role, lower_role, permission)`` for every gap, empty when
        each role's grants are a superset of the next role's
    """
    violations: List[Tuple[Role, Role, Permission]] = []
    for higher, lower in zip(hierarchy, hierarchy[1:]):
        missing = matrix.permissions_for(lower) - matrix.permissions_for(higher)
        for permission in sorted(missing, key=lambda p: p.value):
            violations.append((higher, lower, permission))
    return violations


def _same_id(left: Any, right: Any) -> bool:
    # Stores mix numeric and string keys; 7 and "7" name the same record.
    if left is None or right is None or left == "" or right == "":
        return False
    return str(left) == str(right)


class PermissionEvaluator:
    """Answers capability questions against an injected matrix.

    Denial is always a plain ``False``; nothing here raises for an
    unauthorized actor or an unrecognised role.
    """

    def __init__(self, matrix: Optional[RolePermissionMatrix] = None):
        self.matrix = matrix if matrix is not None else DEFAULT_MATRIX

    def permissions_for(self, role: Any) -> FrozenSet[Permission]:
        return self.matrix.permissions_for(role)

    def has_permission(self, role: Any, permission: PermissionLike) -> bool:
        resolved = parse_permission(permission)
        if resolved is None:
            return False
        return resolved in self.matrix.permissions_for(role)

    def has_any_permission(
        self, role: Any, permissions: Iterable[PermissionLike]
    ) -> bool:
        """True if the role holds at least one permission.

        An empty request is vacuously satisfied and returns True.
        """
        requested = list(permissions)
        if not requested:
            return True
        return any(self.has_permission(role, p) for p in requested)

    def has_all_permissions(
        self, role: Any, permissions: Iterable[PermissionLike]
    ) -> bool:
        """True if the role holds every permission. Empty request returns True."""
        return all(self.has_permission(role, p) for p in permissions)

    def has_role(self, actor_role: Any, allowed_roles: Iterable[RoleLike]) -> bool:
        resolved = parse_role(actor_role)
        if resolved is None:
            return False
        return any(parse_role(r) is resolved for r in allowed_roles)

    def can_access_resource(
        self,
        actor: Any,
        resource_type: str,
        resource: Mapping[str, Any],
    ) -> bool:
        """Row-level check layered on top of the actor's role.

        Admins always pass. Everyone else passes when their department owns
        the record, or when they created it or are assigned to it.

        Args:
            actor: Object exposing ``id``, ``role`` and ``department_id``
            resource_type: Resource category of the record, e.g. ``orders``
            resource: The record, read for ``department_id``, ``created_by``
                and ``assigned_to``
        """
        if parse_role(getattr(actor, "role", None)) in ADMIN_ROLES:
            return True

        department_id = getattr(actor, "department_id", None)
        if _same_id(department_id, resource.get("department_id")):
            return True

        actor_id = getattr(actor, "id", None)
        if _same_id(actor_id, resource.get("created_by")) or _same_id(
            actor_id, resource.get("assigned_to")
        ):
            return True

        logger.debug(
            f"Resource access denied: actor={actor_id} type={resource_type} "
            f"record={resource.get('id')}"
        )
        return False

    def filter_accessible(
        self,
        actor: Any,
        resource_type: str,
        resources: Iterable[Mapping[str, Any]],
    ) -> List[Mapping[str, Any]]:
        """Keep only the records the actor may see."""
        return [
            record
            for record in resources
            if self.can_access_resource(actor, resource_type, record)
        ]


default_evaluator = PermissionEvaluator(DEFAULT_MATRIX)


def _evaluator(matrix: Optional[RolePermissionMatrix]) -> PermissionEvaluator:
    if matrix is None:
        return default_evaluator
    return PermissionEvaluator(matrix)


def permissions_for(
    role: Any, matrix: Optional[RolePermissionMatrix] = None
) -> FrozenSet[Permission]:
    return _evaluator(matrix).permissions_for(role)


def has_permission(
    role: Any,
    permission: PermissionLike,
    matrix: Optional[RolePermissionMatrix] = None,
) -> bool:
    return _evaluator(matrix).has_permission(role, permission)


def has_any_permission(
    role: Any,
    permissions: Iterable[PermissionLike],
    matrix: Optional[RolePermissionMatrix] = None,
) -> bool:
    return _evaluator(matrix).has_any_permission(role, permissions)


def has_all_permissions(
    role: Any,
    permissions: Iterable[PermissionLike],
    matrix: Optional[RolePermissionMatrix] = None,
) -> bool:
    return _evaluator(matrix).has_all_permissions(role, permissions)


def has_role(actor_role: Any, allowed_roles: Iterable[RoleLike]) -> bool:
    return default_evaluator.has_role(actor_role, allowed_roles)


def can_access_resource(
    actor: Any,
    resource_type: str,
    resource: Mapping[str, Any],
) -> bool:
    return default_evaluator.can_access_resource(actor, resource_type, resource)


__all__ = [
    "Role",
    "Permission",
    "RoleLike",
    "PermissionLike",
    "parse_role",
    "parse_permission",
    "RolePermissionMatrix",
    "DEFAULT_ROLE_PERMISSION_MAPPING",
    "DEFAULT_MATRIX",
    "ROLE_HIERARCHY",
    "ADMIN_ROLES",
    "MANAGER_ROLES",
    "find_monotonicity_violations",
    "PermissionEvaluator",
    "default_evaluator",
    "permissions_for",
    "has_permission",
    "has_any_permission",
    "has_all_permissions",
    "has_role",
    "can_access_resource",
]
