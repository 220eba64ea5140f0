"""UI permission gate.

:func:`evaluate_gate` is a pure decision over an actor context and a
:class:`GatePolicy`. :class:`PermissionGate` is the thin presentation
adapter that turns each decision into something renderable: the protected
content, a loading indicator, a caller-supplied fallback, a :class:`Notice`,
or nothing at all.
"""

from enum import Enum
from html import escape
from typing import Any, Callable, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from .entities import UserContext
from .rbac import (
    ADMIN_ROLES,
    MANAGER_ROLES,
    Permission,
    PermissionEvaluator,
    PermissionLike,
    RoleLike,
    default_evaluator,
)

DEFAULT_DENIAL_MESSAGE = "You don't have permission to access this feature."
SIGN_IN_MESSAGE = "Please sign in to access this feature."
DISABLED_MESSAGE = (
    "Your account is currently disabled. Please contact an administrator."
)
LOADING_MESSAGE = "Loading permissions..."


class GateDecision(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    DISABLED = "disabled"
    ROLE_DENIED = "role_denied"
    PERMISSION_DENIED = "permission_denied"
    ALLOWED = "allowed"


class GatePolicy(BaseModel):
    """What a gated subtree requires, and how a denial is presented."""

    model_config = ConfigDict(frozen=True)

    permissions: Tuple[PermissionLike, ...] = ()
    roles: Tuple[RoleLike, ...] = ()
    require_all: bool = False
    show_error: bool = True
    error_message: str = DEFAULT_DENIAL_MESSAGE


def evaluate_gate(
    context: Optional[UserContext],
    policy: GatePolicy,
    *,
    loading: bool = False,
    evaluator: Optional[PermissionEvaluator] = None,
) -> GateDecision:
    """Decide what a gate shows, checking states in a fixed order.

    Roles and permissions are only checked when the policy names some, so a
    policy with neither admits any active, signed-in actor.
    """
    evaluator = evaluator or default_evaluator

    if loading:
        return GateDecision.LOADING
    if context is None:
        return GateDecision.UNAUTHENTICATED
    if not context.is_active:
        return GateDecision.DISABLED
    if policy.roles and not evaluator.has_role(context.role, policy.roles):
        return GateDecision.ROLE_DENIED
    if policy.permissions:
        if policy.require_all:
            granted = evaluator.has_all_permissions(context.role, policy.permissions)
        else:
            granted = evaluator.has_any_permission(context.role, policy.permissions)
        if not granted:
            return GateDecision.PERMISSION_DENIED
    return GateDecision.ALLOWED


class Notice(BaseModel):
    """An alert shown in place of gated content."""

    model_config = ConfigDict(frozen=True)

    kind: GateDecision
    level: str = Field(description="'info', 'warning' or 'error'")
    message: str

    def to_html(self) -> str:
        return (
            f'<div class="alert alert-{escape(self.level)}" role="alert" '
            f'data-gate="{self.kind.value}">{escape(self.message)}</div>'
        )


class LoadingIndicator(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = LOADING_MESSAGE

    def to_html(self) -> str:
        return (
            f'<div class="gate-loading" aria-busy="true">'
            f"{escape(self.message)}</div>"
        )


class PermissionGate:
    """Render adapter over :func:`evaluate_gate`.

    Args:
        policy: Requirements and denial copy
        fallback: Rendered in place of any notice when given
        evaluator: Evaluator to check against, defaults to the shared one
    """

    def __init__(
        self,
        policy: Optional[GatePolicy] = None,
        fallback: Any = None,
        evaluator: Optional[PermissionEvaluator] = None,
    ):
        self.policy = policy or GatePolicy()
        self.fallback = fallback
        self.evaluator = evaluator

    def decide(
        self, context: Optional[UserContext], loading: bool = False
    ) -> GateDecision:
        return evaluate_gate(
            context, self.policy, loading=loading, evaluator=self.evaluator
        )

    def render(
        self,
        context: Optional[UserContext],
        children: Any,
        loading: bool = False,
    ) -> Any:
        """Return the node to display for this actor.

        ``children`` may be a zero-argument callable; it is only invoked when
        access is granted.
        """
        decision = self.decide(context, loading)

        if decision is GateDecision.ALLOWED:
            return children() if callable(children) else children
        if decision is GateDecision.LOADING:
            return LoadingIndicator()
        if self.fallback is not None:
            return self.fallback
        if not self.policy.show_error:
            return None
        return self._notice(decision)

    def _notice(self, decision: GateDecision) -> Notice:
        if decision is GateDecision.UNAUTHENTICATED:
            return Notice(kind=decision, level="warning", message=SIGN_IN_MESSAGE)
        if decision is GateDecision.DISABLED:
            return Notice(kind=decision, level="error", message=DISABLED_MESSAGE)
        return Notice(kind=decision, level="error", message=self.policy.error_message)


def admin_only(fallback: Any = None, show_error: bool = True) -> PermissionGate:
    return PermissionGate(
        GatePolicy(
            roles=ADMIN_ROLES,
            show_error=show_error,
            error_message="Administrator access required.",
        ),
        fallback=fallback,
    )


def manager_only(fallback: Any = None, show_error: bool = True) -> PermissionGate:
    return PermissionGate(
        GatePolicy(
            roles=MANAGER_ROLES,
            show_error=show_error,
            error_message="Manager access required.",
        ),
        fallback=fallback,
    )


def finance_access(
    fallback: Any = None, show_error: bool = True, sensitive: bool = False
) -> PermissionGate:
    """Gate for finance views; ``sensitive`` demands the sensitive-data grant."""
    if sensitive:
        permissions = (Permission.FINANCE_VIEW_SENSITIVE,)
        message = "Sensitive financial data access required."
    else:
        permissions = (Permission.FINANCE_READ,)
        message = "Finance access required."
    return PermissionGate(
        GatePolicy(permissions=permissions, show_error=show_error, error_message=message),
        fallback=fallback,
    )


def production_access(fallback: Any = None, show_error: bool = True) -> PermissionGate:
    return PermissionGate(
        GatePolicy(
            permissions=(Permission.PRODUCTION_READ,),
            show_error=show_error,
            error_message="Production access required.",
        ),
        fallback=fallback,
    )


def with_permissions(
    render: Callable[..., Any],
    permissions: Sequence[PermissionLike] = (),
    roles: Sequence[RoleLike] = (),
    require_all: bool = False,
) -> Callable[..., Any]:
    """Wrap a page render function so it only runs for permitted actors.

    The wrapped callable takes the actor context first, then whatever the
    original render function accepts.
    """
    gate = PermissionGate(
        GatePolicy(
            permissions=tuple(permissions),
            roles=tuple(roles),
            require_all=require_all,
        )
    )

    def protected(
        context: Optional[UserContext], *args: Any, loading: bool = False, **kwargs: Any
    ) -> Any:
        return gate.render(context, lambda: render(*args, **kwargs), loading=loading)

    protected.__name__ = f"with_permissions({getattr(render, '__name__', 'render')})"
    protected.__wrapped__ = render  # type: ignore[attr-defined]
    protected.gate = gate  # type: ignore[attr-defined]
    return protected


def check_access(
    context: Optional[UserContext],
    policy: GatePolicy,
    evaluator: Optional[PermissionEvaluator] = None,
) -> bool:
    """Button-level check: roles first, then permissions, no notices.

    Unlike the full gate this ignores the active flag, so controls can be
    hidden consistently even before account state is known.
    """
    evaluator = evaluator or default_evaluator
    if context is None:
        return not policy.roles and not policy.permissions
    if policy.roles and not evaluator.has_role(context.role, policy.roles):
        return False
    if policy.permissions:
        if policy.require_all:
            return evaluator.has_all_permissions(context.role, policy.permissions)
        return evaluator.has_any_permission(context.role, policy.permissions)
    return True


def conditional_render(condition: bool, children: Any, fallback: Any = None) -> Any:
    return children if condition else fallback


__all__ = [
    "DEFAULT_DENIAL_MESSAGE",
    "SIGN_IN_MESSAGE",
    "DISABLED_MESSAGE",
    "GateDecision",
    "GatePolicy",
    "evaluate_gate",
    "Notice",
    "LoadingIndicator",
    "PermissionGate",
    "admin_only",
    "manager_only",
    "finance_access",
    "production_access",
    "with_permissions",
    "check_access",
    "conditional_render",
]
