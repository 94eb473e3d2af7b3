"""
Tenant-scoped collection access.

Convention:
  - Tenant-scoped collections:  shared collection, every document carries
    ``tenant_id``; every query and write goes through TenantScopedCollection
    e.g.  customers, roles, memberships, audit_logs
  - Global collections:         {collection_name}
    e.g.  tenants, users, sessions  (shared across all tenants)
"""

import re
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

from bizhub.rbac.errors import TenantMismatch

_SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9\-]{0,61}[a-z0-9])?$")

RESERVED_SUBDOMAINS = frozenset({"www", "api", "admin", "app", "mail", "static"})


def validate_subdomain(subdomain: str) -> str:
    """Normalise a subdomain and make sure it is a safe DNS label."""
    value = subdomain.strip().lower()
    if not _SUBDOMAIN_PATTERN.match(value):
        raise ValueError(
            f"Invalid subdomain '{subdomain}'. "
            "Must be lowercase alphanumeric with optional inner hyphens."
        )
    if value in RESERVED_SUBDOMAINS:
        raise ValueError(f"Subdomain '{value}' is reserved")
    return value


class TenantScopedCollection:
    """
    A collection view pinned to one tenant.

    Filters get ``tenant_id`` added; inserted documents get it stamped.
    A filter, document or update that names a different tenant raises
    TenantMismatch instead of silently reaching across tenants.
    """

    def __init__(self, collection: AsyncIOMotorCollection, tenant_id: str):
        if not tenant_id:
            raise ValueError("tenant_id is required for a tenant-scoped collection")
        self.collection = collection
        self.tenant_id = str(tenant_id)

    @property
    def name(self) -> str:
        return self.collection.name

    def _check(self, value: Any) -> None:
        if value is not None and str(value) != self.tenant_id:
            raise TenantMismatch(
                reason=f"{self.name}: tenant {value!r} used from tenant {self.tenant_id}"
            )

    def _scope(self, filter: Optional[dict]) -> dict:
        scoped = dict(filter or {})
        self._check(scoped.get("tenant_id"))
        scoped["tenant_id"] = self.tenant_id
        return scoped

    def _stamp(self, document: dict) -> dict:
        self._check(document.get("tenant_id"))
        document["tenant_id"] = self.tenant_id
        return document

    def _guard_update(self, update: dict) -> dict:
        for operator in ("$set", "$setOnInsert"):
            if "tenant_id" in update.get(operator, {}):
                self._check(update[operator]["tenant_id"])
        if "tenant_id" in update.get("$unset", {}):
            raise TenantMismatch(reason=f"{self.name}: tenant_id cannot be unset")
        return update

    # ── Reads ────────────────────────────────────────────────
    async def find_one(self, filter: Optional[dict] = None, *args, **kwargs):
        return await self.collection.find_one(self._scope(filter), *args, **kwargs)

    def find(self, filter: Optional[dict] = None, *args, **kwargs):
        return self.collection.find(self._scope(filter), *args, **kwargs)

    async def count_documents(self, filter: Optional[dict] = None, **kwargs) -> int:
        return await self.collection.count_documents(self._scope(filter), **kwargs)

    # ── Writes ───────────────────────────────────────────────
    async def insert_one(self, document: dict, **kwargs):
        return await self.collection.insert_one(self._stamp(document), **kwargs)

    async def insert_many(self, documents: list[dict], **kwargs):
        return await self.collection.insert_many(
            [self._stamp(doc) for doc in documents], **kwargs
        )

    async def update_one(self, filter: dict, update: dict, **kwargs):
        return await self.collection.update_one(
            self._scope(filter), self._guard_update(update), **kwargs
        )

    async def update_many(self, filter: dict, update: dict, **kwargs):
        return await self.collection.update_many(
            self._scope(filter), self._guard_update(update), **kwargs
        )

    async def find_one_and_update(self, filter: dict, update: dict, **kwargs):
        return await self.collection.find_one_and_update(
            self._scope(filter), self._guard_update(update), **kwargs
        )

    async def delete_one(self, filter: dict, **kwargs):
        return await self.collection.delete_one(self._scope(filter), **kwargs)


def get_tenant_collection(
    db: AsyncIOMotorDatabase,
    tenant_id: str,
    collection_name: str,
) -> TenantScopedCollection:
    """
    Return a tenant-scoped collection.

    Example:
        get_tenant_collection(db, tenant_id, "customers").find({})
        →  db["customers"].find({"tenant_id": tenant_id})
    """
    return TenantScopedCollection(db[collection_name], tenant_id)


def get_global_collection(
    db: AsyncIOMotorDatabase,
    collection_name: str,
) -> AsyncIOMotorCollection:
    """
    Return a global (non-tenant) collection.

    Example:
        get_global_collection(db, "tenants")  →  db["tenants"]
    """
    return db[collection_name]
