"""
limn_access - role-based access control for the Limn business dashboard.

The package decides what staff and client-portal actors may see and do:

- A closed set of roles and ``<resource>.<action>`` permissions, joined by
  an immutable role-permission matrix
- Pure evaluators for ANY/ALL permission, role and row-ownership checks
- A request guard for FastAPI route handlers with a stable JSON envelope
- A UI gate that maps the same checks onto renderable decisions

Main Exports:
    - create_app: FastAPI application factory
    - Role, Permission: Closed authorization vocabularies
    - RolePermissionMatrix, PermissionEvaluator: Matrix and evaluator
"""

from limn_access.api.auth.rbac import (
    DEFAULT_MATRIX,
    Permission,
    PermissionEvaluator,
    Role,
    RolePermissionMatrix,
)

__version__ = "0.1.0"

__all__ = [
    "DEFAULT_MATRIX",
    "Permission",
    "PermissionEvaluator",
    "Role",
    "RolePermissionMatrix",
    "__version__",
]
