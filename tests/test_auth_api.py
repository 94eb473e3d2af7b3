"""Login, session cookie, /me and logout."""

import pytest

from bizhub.config import settings

from .conftest import auth_headers

LOGIN = "/api/v1/auth/login"
PASSWORD = "correct horse battery"


@pytest.fixture
def tenant_id(factory):
    return factory.tenant("acme")


@pytest.fixture
def member(factory, tenant_id):
    user_id = factory.user("ada@example.com", password=PASSWORD)
    role_id = factory.role(tenant_id, name="Clerk", permissions=["customers.view"])
    factory.membership(tenant_id, user_id, role_id)
    return user_id


def login(client, identifier="ada@example.com", password=PASSWORD, subdomain="acme"):
    return client.post(
        LOGIN, json={"identifier": identifier, "password": password, "subdomain": subdomain}
    )


def test_login_opens_session_and_sets_cookie(client, member, tenant_id, db):
    response = login(client)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token_type"] == "bearer"
    assert data["tenant"]["_id"] == tenant_id
    assert "password" not in data["user"]
    assert settings.session_cookie_name in response.cookies

    session = db["sessions"].docs[0]
    assert session["user_id"] == member
    assert session["tenant_id"] == tenant_id
    assert session["revoked"] is False


def test_session_cookie_authenticates_follow_up_requests(client, member, tenant_id):
    login(client)

    me = client.get("/api/v1/auth/me")
    customers = client.get("/api/v1/customers/")

    assert me.status_code == 200
    assert me.json()["data"]["id"] == member
    assert me.json()["data"]["session_tenant_id"] == tenant_id
    assert customers.status_code == 200


@pytest.mark.parametrize(
    "identifier, password",
    [("ada@example.com", "wrong"), ("nobody@example.com", PASSWORD)],
)
def test_bad_credentials_are_401(client, member, identifier, password):
    response = login(client, identifier, password)

    assert response.status_code == 401
    assert response.json()["error"]["message"] == "Invalid credentials"


def test_deactivated_account_is_refused(client, factory, tenant_id):
    factory.user("gone@example.com", password=PASSWORD, is_active=False)

    assert login(client, "gone@example.com").status_code == 403


def test_login_needs_membership_in_the_tenant(client, member, factory):
    factory.tenant("globex")

    response = login(client, subdomain="globex")

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "TENANT_ACCESS_DENIED"


@pytest.mark.parametrize("status", ["suspended", "archived"])
def test_login_into_inactive_tenant_is_refused(client, factory, status):
    factory.tenant("sleepy", status=status)
    factory.user("ada@example.com", password=PASSWORD, global_role="super_admin")

    response = login(client, subdomain="sleepy")

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "TENANT_ACCESS_DENIED"


def test_super_admin_logs_in_without_membership(client, factory, tenant_id):
    factory.user("root@example.com", password=PASSWORD, global_role="super_admin")

    response = login(client, "root@example.com")

    assert response.status_code == 200


def test_logout_revokes_session(client, member, tenant_id):
    token = login(client).json()["data"]["access_token"]
    client.cookies.clear()

    assert client.post("/api/v1/auth/logout", headers=auth_headers(token)).status_code == 200

    assert client.get("/api/v1/auth/me", headers=auth_headers(token)).status_code == 401
    revoked = client.get("/api/v1/customers/", headers=auth_headers(token, tenant_id))
    assert revoked.status_code == 401


def test_logout_without_credential_is_401(client):
    response = client.post("/api/v1/auth/logout")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_REQUIRED"


def test_me_without_credential_is_401(client):
    assert client.get("/api/v1/auth/me").status_code == 401


def test_health_is_public(client):
    assert client.get("/health").json()["status"] == "healthy"
