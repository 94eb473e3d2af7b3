from .container import AccessControl, get_access_control
from .permissions import (
    AccessContext,
    AccessPolicy,
    get_access_context,
    with_global_role,
    with_permissions,
)
from .guards import PUBLIC_ROUTES, UnguardedRouteError, verify_route_guards

__all__ = [
    "AccessControl",
    "get_access_control",
    "AccessContext",
    "AccessPolicy",
    "get_access_context",
    "with_global_role",
    "with_permissions",
    "PUBLIC_ROUTES",
    "UnguardedRouteError",
    "verify_route_guards",
]
