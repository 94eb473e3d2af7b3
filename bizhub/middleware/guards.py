"""
Start-up check that every API route is guarded.

A route either carries an access policy (set by ``with_permissions`` or
``with_global_role``) or is listed in PUBLIC_ROUTES. Anything else fails
app creation, so a handler cannot skip the access check by omission.
"""

from fastapi import FastAPI
from fastapi.routing import APIRoute

from bizhub.config import settings
from bizhub.utils import Logger

logger = Logger("access")

_v = settings.api_version

# (method, path template) pairs reachable without an access policy
PUBLIC_ROUTES: frozenset[tuple[str, str]] = frozenset({
    ("GET", "/health"),
    ("POST", f"/api/{_v}/auth/login"),
    ("POST", f"/api/{_v}/auth/logout"),
    ("GET", f"/api/{_v}/auth/me"),
    ("POST", f"/base/api/{_v}/set-up"),
    ("GET", f"/base/api/{_v}/check-subdomain/{{subdomain}}"),
})


class UnguardedRouteError(RuntimeError):
    def __init__(self, routes: list[str]):
        self.routes = routes
        super().__init__(f"Routes without an access policy: {', '.join(routes)}")


def verify_route_guards(
    app: FastAPI,
    public_routes: frozenset[tuple[str, str]] = PUBLIC_ROUTES,
) -> int:
    """Raise UnguardedRouteError for any API route that is neither guarded nor public."""
    unguarded: list[str] = []
    checked = 0

    for route in app.routes:
        if not isinstance(route, APIRoute):
            continue
        checked += 1
        if hasattr(route.endpoint, "__access_policy__"):
            continue
        for method in sorted(route.methods):
            if (method, route.path) not in public_routes:
                unguarded.append(f"{method} {route.path}")

    if unguarded:
        logger.error(f"Unguarded routes found: {unguarded}")
        raise UnguardedRouteError(unguarded)

    logger.info(f"Route guards verified for {checked} API routes")
    return checked
