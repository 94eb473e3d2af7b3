"""Pytest configuration and fixtures for BizHub tests."""

import os

# Standalone fakes have no replica set; must be set before bizhub.config loads
os.environ["USE_TRANSACTIONS"] = "false"

import secrets
from datetime import timedelta
from typing import Iterable, Optional

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from bizhub.app import create_app
from bizhub.auth import create_session_token, hash_password
from bizhub.config import get_database, settings
from bizhub.middleware import AccessControl

from .fakes import FakeAccessStore, FakeClock, FakeDatabase, FakeUtcClock


class Factory:
    """Synchronous seeding of tenants, roles, users, memberships and sessions."""

    def __init__(self, db: FakeDatabase, utc_clock: FakeUtcClock):
        self.db = db
        self.utc_clock = utc_clock

    def tenant(self, subdomain: str = "acme", status: str = "active", name: Optional[str] = None) -> str:
        doc = self.db["tenants"].seed({
            "name": name or subdomain.title(),
            "subdomain": subdomain,
            "status": status,
            "plan": "free",
        })
        return str(doc["_id"])

    def role(
        self,
        tenant_id: str,
        name: str = "Cashier",
        permissions: Iterable[str] = (),
        level: int = 30,
        is_system_role: bool = False,
        is_active: bool = True,
    ) -> str:
        doc = self.db["roles"].seed({
            "tenant_id": tenant_id,
            "name": name,
            "description": f"{name} role",
            "level": level,
            "permissions": list(permissions),
            "is_system_role": is_system_role,
            "is_active": is_active,
            "created_at": self.utc_clock(),
            "updated_at": self.utc_clock(),
        })
        return str(doc["_id"])

    def user(
        self,
        email: str = "jane@example.com",
        global_role: str = "user",
        password: Optional[str] = None,
        is_active: bool = True,
    ) -> str:
        doc = self.db["users"].seed({
            "email": email,
            "name": email.split("@")[0].title(),
            "password": hash_password(password) if password else "",
            "global_role": global_role,
            "is_active": is_active,
        })
        return str(doc["_id"])

    def membership(
        self,
        tenant_id: str,
        user_id: str,
        role_id: str,
        custom_permissions: Iterable[str] = (),
        status: str = "active",
    ) -> str:
        doc = self.db["memberships"].seed({
            "tenant_id": tenant_id,
            "user_id": user_id,
            "role_id": role_id,
            "custom_permissions": list(custom_permissions),
            "status": status,
            "joined_at": self.utc_clock(),
            "updated_at": self.utc_clock(),
        })
        return str(doc["_id"])

    def token(
        self,
        user_id: str,
        tenant_id: Optional[str] = None,
        expires_in: timedelta = timedelta(hours=1),
        revoked: bool = False,
    ) -> str:
        now = self.utc_clock()
        session = self.db["sessions"].seed({
            "_id": secrets.token_urlsafe(16),
            "user_id": user_id,
            "tenant_id": tenant_id,
            "created_at": now,
            "expires_at": now + expires_in,
            "revoked": revoked,
        })
        return create_session_token(user_id, session["_id"], tenant_id, session["expires_at"])

    def member(
        self,
        tenant_id: str,
        permissions: Iterable[str],
        email: Optional[str] = None,
        custom_permissions: Iterable[str] = (),
        global_role: str = "user",
    ) -> tuple[str, str]:
        """A user holding a fresh role with ``permissions`` in the tenant. Returns (user_id, token)."""
        email = email or f"user-{ObjectId()}@example.com"
        role_id = self.role(tenant_id, name=f"Role {ObjectId()}", permissions=permissions)
        user_id = self.user(email, global_role=global_role)
        self.membership(tenant_id, user_id, role_id, custom_permissions)
        return user_id, self.token(user_id, tenant_id)


def auth_headers(token: str, tenant_id: Optional[str] = None) -> dict:
    headers = {"Authorization": f"Bearer {token}"}
    if tenant_id:
        headers[settings.tenant_header] = tenant_id
    return headers


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def store(db) -> FakeAccessStore:
    return FakeAccessStore(db)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def utc_clock() -> FakeUtcClock:
    return FakeUtcClock()


@pytest.fixture
def access(db, store, clock, utc_clock) -> AccessControl:
    return AccessControl(db, store=store, clock=clock, utc_clock=utc_clock)


@pytest.fixture
def factory(db, utc_clock) -> Factory:
    return Factory(db, utc_clock)


@pytest.fixture
def app(access, db):
    application = create_app(access=access)
    application.dependency_overrides[get_database] = lambda: db
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
