"""The with_permissions guard end to end: stage order, refusals and context injection."""

import json
import logging
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from bson import ObjectId
from fastapi import Body, FastAPI, Request
from fastapi.testclient import TestClient

from bizhub.middleware import get_access_context, with_permissions
from bizhub.rbac import ADMIN_BYPASS, Permission

from .conftest import auth_headers
from .fakes import make_request


@pytest.fixture
def calls():
    return []


@pytest.fixture
def guarded(access, calls):
    app = FastAPI()
    app.state.access = access

    @app.get("/items")
    @with_permissions([Permission.CUSTOMERS_VIEW, Permission.CUSTOMERS_EDIT])
    async def list_items(request: Request):
        ctx = get_access_context(request)
        calls.append("list")
        return {
            "tenant_id": ctx.tenant_id,
            "user_id": ctx.user_id,
            "permissions": request.state.user_permissions,
        }

    @app.post("/items")
    @with_permissions(Permission.CUSTOMERS_CREATE)
    async def create_item(request: Request, payload: dict = Body(...)):
        calls.append("create")
        return {"created": payload}

    @app.post("/imports")
    @with_permissions(Permission.CUSTOMERS_CREATE)
    async def import_items(request: Request):
        calls.append("import")
        return {"imported": await request.json()}

    @app.delete("/items/{item_id}")
    @with_permissions(Permission.CUSTOMERS_DELETE)
    async def delete_item(request: Request, item_id: str):
        calls.append("delete")
        return {"deleted": item_id}

    @app.get("/settings")
    @with_permissions(Permission.SYSTEM_SETTINGS, bypass=ADMIN_BYPASS)
    async def settings_view(request: Request):
        calls.append("settings")
        return {"bypass": get_access_context(request).decision.is_bypass}

    @app.get("/public-catalog")
    @with_permissions(Permission.INVENTORY_VIEW, allow_anonymous=True)
    async def public_catalog(request: Request):
        calls.append("catalog")
        return {"user": get_access_context(request).user_id}

    with TestClient(app) as client:
        yield client


@pytest.fixture
def tenant_id(factory):
    return factory.tenant("acme")


def error_of(response) -> dict:
    body = response.json()
    assert body["success"] is False
    return body["error"]


def test_insufficient_permissions_blocks_handler(guarded, factory, tenant_id, calls):
    _, token = factory.member(tenant_id, ["customers.view"])

    response = guarded.delete("/items/42", headers=auth_headers(token))

    assert response.status_code == 403
    error = error_of(response)
    assert error["code"] == "INSUFFICIENT_PERMISSIONS"
    assert error["details"] == {"requiredPermissions": ["customers.delete"], "requireAll": False}
    assert "customers.view" not in response.text
    assert calls == []


def test_allowed_request_reaches_handler_with_context(guarded, factory, tenant_id, calls):
    user_id, token = factory.member(tenant_id, ["customers.edit"], custom_permissions=["sales.view"])

    response = guarded.get("/items", headers=auth_headers(token))

    assert response.status_code == 200
    assert response.json() == {
        "tenant_id": tenant_id,
        "user_id": user_id,
        "permissions": ["customers.edit", "sales.view"],
    }
    assert calls == ["list"]


def test_missing_credential_is_401(guarded, tenant_id, calls):
    response = guarded.get("/items", headers={"X-Tenant-ID": tenant_id})

    assert response.status_code == 401
    assert error_of(response)["code"] == "AUTH_REQUIRED"
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert calls == []


def test_expired_session_is_401(guarded, factory, tenant_id, utc_clock, calls):
    _, token = factory.member(tenant_id, ["customers.view"])
    utc_clock.advance(timedelta(hours=2))

    response = guarded.get("/items", headers=auth_headers(token, tenant_id))

    assert response.status_code == 401
    assert calls == []


def test_body_naming_other_tenant_is_refused(guarded, factory, tenant_id, calls):
    other = factory.tenant("globex")
    _, token = factory.member(tenant_id, ["customers.create"])

    response = guarded.post("/items", json={"name": "x", "tenant_id": other}, headers=auth_headers(token))

    assert response.status_code == 403
    assert error_of(response)["code"] == "TENANT_MISMATCH"
    assert calls == []


def test_header_less_body_naming_other_tenant_is_refused(guarded, factory, tenant_id, calls):
    other = factory.tenant("globex")
    _, token = factory.member(tenant_id, ["customers.create"])

    response = guarded.post(
        "/imports",
        content=json.dumps({"name": "x", "tenant_id": other}),
        headers=auth_headers(token),
    )

    assert response.status_code == 403
    assert error_of(response)["code"] == "TENANT_MISMATCH"
    assert calls == []


def test_header_less_body_with_own_tenant_passes(guarded, factory, tenant_id, calls):
    _, token = factory.member(tenant_id, ["customers.create"])

    response = guarded.post(
        "/imports", content=json.dumps({"tenant_id": tenant_id}), headers=auth_headers(token)
    )

    assert response.status_code == 200
    assert response.json() == {"imported": {"tenant_id": tenant_id}}
    assert calls == ["import"]


def test_malformed_body_is_rejected_before_the_guard_runs(guarded, tenant_id, calls):
    # FastAPI validates declared body parameters before calling the guarded endpoint
    response = guarded.post(
        "/items",
        content=b"{not json",
        headers={"Content-Type": "application/json", "X-Tenant-ID": tenant_id},
    )

    assert response.status_code == 422
    assert calls == []


def test_body_with_own_tenant_passes(guarded, factory, tenant_id, calls):
    _, token = factory.member(tenant_id, ["customers.create"])

    response = guarded.post("/items", json={"tenant_id": tenant_id}, headers=auth_headers(token))

    assert response.status_code == 200
    assert calls == ["create"]


def test_header_disagreeing_with_session_tenant_is_refused(guarded, factory, tenant_id, calls):
    other = factory.tenant("globex")
    _, token = factory.member(tenant_id, ["customers.view"])

    response = guarded.get("/items", headers=auth_headers(token, other))

    assert response.status_code == 403
    assert error_of(response)["code"] == "TENANT_MISMATCH"
    assert calls == []


def test_membership_elsewhere_grants_nothing_here(guarded, factory, tenant_id, calls):
    other = factory.tenant("globex")
    user_id, _ = factory.member(tenant_id, ["customers.view"])
    token = factory.token(user_id, other)

    response = guarded.get("/items", headers=auth_headers(token))

    assert response.status_code == 403
    assert error_of(response)["code"] == "INSUFFICIENT_PERMISSIONS"
    assert calls == []


def test_inactive_and_unknown_tenants_look_the_same(guarded, factory, calls):
    suspended = factory.tenant("sleepy", status="suspended")
    user_id = factory.user(global_role="super_admin")
    token = factory.token(user_id)

    inactive = guarded.get("/settings", headers=auth_headers(token, suspended))
    unknown = guarded.get("/settings", headers=auth_headers(token, str(ObjectId())))

    assert inactive.status_code == unknown.status_code == 403
    assert error_of(inactive) == error_of(unknown)
    assert error_of(inactive)["code"] == "TENANT_ACCESS_DENIED"
    assert calls == []


def test_no_tenant_source_is_refused(guarded, factory, calls):
    token = factory.token(factory.user(global_role="super_admin"))

    response = guarded.get("/settings", headers=auth_headers(token))

    assert response.status_code == 403
    assert error_of(response)["code"] == "TENANT_ACCESS_DENIED"
    assert calls == []


def test_bypass_is_allowed_and_logged(guarded, factory, tenant_id, calls, caplog):
    token = factory.token(factory.user(global_role="super_admin"))

    with caplog.at_level(logging.INFO, logger="access"):
        response = guarded.get("/settings", headers=auth_headers(token, tenant_id))

    assert response.status_code == 200
    assert response.json() == {"bypass": True}
    assert any("bypass=admin-bypass" in r.getMessage() for r in caplog.records)


def test_denials_are_logged_with_held_permissions(guarded, factory, tenant_id, caplog):
    _, token = factory.member(tenant_id, ["customers.view"])

    with caplog.at_level(logging.INFO, logger="access"):
        guarded.delete("/items/1", headers=auth_headers(token))

    denial = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any("insufficient_permissions" in m and "held=customers.view" in m for m in denial)


def test_anonymous_route(guarded, tenant_id, calls):
    response = guarded.get("/public-catalog", headers={"X-Tenant-ID": tenant_id})

    assert response.status_code == 200
    assert response.json() == {"user": None}


def test_storage_failure_fails_closed(guarded, factory, tenant_id, store, calls):
    _, token = factory.member(tenant_id, ["customers.delete"])
    store.get_membership_grants = AsyncMock(side_effect=ConnectionError("down"))

    response = guarded.delete("/items/1", headers=auth_headers(token))

    assert response.status_code == 500
    assert error_of(response)["code"] == "PERMISSION_SERVICE_ERROR"
    assert "down" not in response.text
    assert calls == []


def test_unexpected_crash_in_check_fails_closed(guarded, factory, tenant_id, access, calls):
    _, token = factory.member(tenant_id, ["customers.view"])
    access.engine.decide = AsyncMock(side_effect=KeyError("boom"))

    response = guarded.get("/items", headers=auth_headers(token))

    assert response.status_code == 500
    assert error_of(response)["code"] == "PERMISSION_SERVICE_ERROR"
    assert calls == []


def test_context_lookup_without_guard_raises():
    with pytest.raises(RuntimeError):
        get_access_context(make_request())


def test_policy_is_attached_to_handler():
    @with_permissions(["customers.view", "customers.edit"], require_all=True)
    async def handler(request: Request):
        return None

    policy = handler.__access_policy__
    assert policy.required == (Permission.CUSTOMERS_VIEW, Permission.CUSTOMERS_EDIT)
    assert policy.require_all is True
    assert policy.tenant_scoped is True
