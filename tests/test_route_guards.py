"""Start-up verification that no API route skips the access check."""

import pytest
from fastapi import FastAPI, Request
from fastapi.routing import APIRoute

from bizhub.middleware import PUBLIC_ROUTES, UnguardedRouteError, verify_route_guards, with_permissions
from bizhub.rbac import Permission


def test_application_routes_are_all_guarded_or_public(app):
    checked = verify_route_guards(app)

    assert checked >= 20
    for route in app.routes:
        if isinstance(route, APIRoute) and not hasattr(route.endpoint, "__access_policy__"):
            assert all((m, route.path) in PUBLIC_ROUTES for m in route.methods)


def test_tenant_routes_carry_permission_policies(app):
    policies = {
        (method, route.path): route.endpoint.__access_policy__
        for route in app.routes
        if isinstance(route, APIRoute) and hasattr(route.endpoint, "__access_policy__")
        for method in route.methods
    }

    assert policies[("DELETE", "/api/v1/customers/{customer_id}")].required == (Permission.CUSTOMERS_DELETE,)
    assert policies[("POST", "/api/v1/roles/")].required == (Permission.STAFF_ROLES,)
    assert policies[("PATCH", "/api/v1/tenants/{tenant_id}/status")].tenant_scoped is False


def test_unguarded_route_fails_verification():
    app = FastAPI()

    @app.get("/api/v1/forgotten")
    async def forgotten():
        return {}

    @app.get("/api/v1/guarded")
    @with_permissions(Permission.REPORTS_VIEW)
    async def guarded(request: Request):
        return {}

    with pytest.raises(UnguardedRouteError) as exc:
        verify_route_guards(app)

    assert exc.value.routes == ["GET /api/v1/forgotten"]


def test_explicitly_public_route_passes():
    app = FastAPI()

    @app.get("/status")
    async def status():
        return {}

    assert verify_route_guards(app, public_routes=frozenset({("GET", "/status")})) == 1
