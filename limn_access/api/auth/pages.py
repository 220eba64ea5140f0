"""Default permission requirements for dashboard pages."""

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .rbac import Permission, PermissionLike, parse_permission

DEFAULT_PAGE_PERMISSIONS: Dict[str, List[str]] = {
    "/dashboard": ["customers.read"],
    # Customer management
    "/dashboard/customers": ["customers.read"],
    "/dashboard/clients": ["customers.read"],
    "/dashboard/contacts": ["customers.read"],
    "/dashboard/leads": ["customers.read"],
    "/dashboard/crm": ["customers.read"],
    # Financial management
    "/dashboard/payments": ["finance.read"],
    "/dashboard/ar-aging": ["finance.read", "finance.view_sensitive"],
    "/dashboard/finance": ["finance.read"],
    "/dashboard/budgets": ["finance.read"],
    "/dashboard/collections": ["finance.read"],
    "/dashboard/invoices": ["finance.read"],
    # Order management
    "/dashboard/orders": ["orders.read"],
    "/dashboard/contracts": ["orders.read"],
    "/dashboard/pipeline": ["orders.read"],
    # Products & inventory
    "/dashboard/products": ["products.read"],
    "/dashboard/items": ["products.read"],
    "/dashboard/materials": ["products.read"],
    # Projects
    "/dashboard/projects": ["projects.read"],
    "/dashboard/design-projects": ["design.read"],
    "/dashboard/design-briefs": ["design.read"],
    # Manufacturing & production
    "/dashboard/production": ["production.read"],
    "/dashboard/manufacturers": ["production.read"],
    "/dashboard/shop-drawings": ["production.read"],
    "/dashboard/qc-tracking": ["production.read"],
    # Shipping & logistics
    "/dashboard/shipping": ["orders.read"],
    "/dashboard/shipping-quotes": ["orders.read"],
    "/dashboard/shipping-management": ["orders.read"],
    # Analytics & reports
    "/dashboard/analytics": ["reports.read"],
    "/dashboard/reports": ["reports.read"],
    # Administration
    "/dashboard/settings": ["users.read"],
    "/dashboard/admin": ["system.configure"],
    # Team management
    "/dashboard/workflows": ["projects.read"],
    "/dashboard/tasks": ["projects.read"],
    "/dashboard/my-tasks": ["projects.read"],
}

DEFAULT_FALLBACK_PERMISSIONS: Tuple[str, ...] = ("customers.read",)


def _normalize(path: str) -> str:
    path = path.split("?", 1)[0].split("#", 1)[0]
    if len(path) > 1:
        path = path.rstrip("/")
    return path or "/"


def _resolve_all(permissions: Iterable[PermissionLike], page: str) -> Tuple[Permission, ...]:
    resolved = []
    for raw in permissions:
        permission = parse_permission(raw)
        if permission is None:
            raise ValueError(f"Unknown permission {raw!r} required by page {page}")
        resolved.append(permission)
    return tuple(resolved)


class PagePermissionMap:
    """Immutable lookup from a URL path to the permissions required to view it.

    Exact matches win; otherwise the longest registered prefix that the path
    extends by a full segment applies; unmatched paths get the fallback.
    """

    def __init__(
        self,
        pages: Optional[Mapping[str, Iterable[PermissionLike]]] = None,
        default: Sequence[PermissionLike] = DEFAULT_FALLBACK_PERMISSIONS,
    ):
        source = DEFAULT_PAGE_PERMISSIONS if pages is None else pages
        self._pages = MappingProxyType(
            {_normalize(path): _resolve_all(perms, path) for path, perms in source.items()}
        )
        self._default = _resolve_all(default, "<default>")
        # Longest prefixes first so the most specific page wins.
        self._prefixes = sorted(self._pages, key=len, reverse=True)

    @property
    def default(self) -> List[Permission]:
        return list(self._default)

    def match(self, path: str) -> Optional[str]:
        """Return the registered page key governing ``path``, if any."""
        normalized = _normalize(path)
        if normalized in self._pages:
            return normalized
        for prefix in self._prefixes:
            base = "" if prefix == "/" else prefix
            if normalized.startswith(base + "/"):
                return prefix
        return None

    def permissions_for_path(self, path: str) -> List[Permission]:
        key = self.match(path)
        if key is None:
            return list(self._default)
        return list(self._pages[key])

    def as_dict(self) -> Dict[str, List[str]]:
        return {path: [p.value for p in perms] for path, perms in self._pages.items()}

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and _normalize(path) in self._pages

    def __len__(self) -> int:
        return len(self._pages)


DEFAULT_PAGE_MAP = PagePermissionMap()


def get_page_permissions(
    path: str, page_map: Optional[PagePermissionMap] = None
) -> List[Permission]:
    """Required permissions for a page, using the default map when none given."""
    if page_map is None:
        page_map = DEFAULT_PAGE_MAP
    return page_map.permissions_for_path(path)


__all__ = [
    "DEFAULT_PAGE_PERMISSIONS",
    "DEFAULT_FALLBACK_PERMISSIONS",
    "PagePermissionMap",
    "DEFAULT_PAGE_MAP",
    "get_page_permissions",
]
