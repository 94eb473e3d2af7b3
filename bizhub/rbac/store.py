"""
Read access to the collections the access-control core depends on.

Collections (all global; tenant-scoped ones carry ``tenant_id``):
    tenants       {_id, name, subdomain, status, plan}
    users         {_id, email, name, password, global_role, is_active}
    sessions      {_id: sid, user_id, tenant_id, expires_at, revoked}
    roles         {_id, tenant_id, name, permissions[], level, is_system_role, is_active}
    memberships   {_id, tenant_id, user_id, role_id, custom_permissions[], status}

Every read of a tenant-scoped document filters on (tenant_id, id), and the
membership -> role join matches on both the role id and the membership's
tenant, so a membership can never pick up a role from another tenant.

Storage errors are not handled here; callers convert them to deny
decisions.
"""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from bizhub.utils import to_object_id


class AccessStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.tenants = db["tenants"]
        self.users = db["users"]
        self.sessions = db["sessions"]
        self.roles = db["roles"]
        self.memberships = db["memberships"]

    # ── Tenants ──────────────────────────────────────────────
    async def get_tenant(self, tenant_id: str) -> Optional[dict]:
        oid = to_object_id(tenant_id)
        if oid is None:
            return None
        return await self.tenants.find_one({"_id": oid})

    async def get_tenant_by_subdomain(self, subdomain: str) -> Optional[dict]:
        return await self.tenants.find_one({"subdomain": subdomain})

    # ── Identity ─────────────────────────────────────────────
    async def get_user(self, user_id: str) -> Optional[dict]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        return await self.users.find_one({"_id": oid}, {"password": 0})

    async def get_session(self, session_id: str) -> Optional[dict]:
        return await self.sessions.find_one({"_id": session_id})

    # ── Authorization ────────────────────────────────────────
    async def get_membership_grants(self, user_id: str, tenant_id: str) -> Optional[dict]:
        """
        The active membership of ``user_id`` in ``tenant_id`` joined to its role.

        Returns ``{membership_id, role_id, role_name, role_active,
        role_permissions, is_system_role, custom_permissions}`` or None when
        there is no active membership or its role is not in the same tenant.
        """
        pipeline = [
            {"$match": {"user_id": user_id, "tenant_id": tenant_id, "status": "active"}},
            {"$limit": 1},
            {
                "$lookup": {
                    "from": "roles",
                    "let": {"role_id": "$role_id", "tenant_id": "$tenant_id"},
                    "pipeline": [
                        {
                            "$match": {
                                "$expr": {
                                    "$and": [
                                        {"$eq": [{"$toString": "$_id"}, "$$role_id"]},
                                        {"$eq": ["$tenant_id", "$$tenant_id"]},
                                    ]
                                }
                            }
                        }
                    ],
                    "as": "role",
                }
            },
            {"$unwind": "$role"},
            {
                "$project": {
                    "_id": 0,
                    "membership_id": {"$toString": "$_id"},
                    "role_id": "$role_id",
                    "role_name": "$role.name",
                    "role_active": {"$ifNull": ["$role.is_active", True]},
                    "role_permissions": {"$ifNull": ["$role.permissions", []]},
                    "is_system_role": {"$ifNull": ["$role.is_system_role", False]},
                    "custom_permissions": {"$ifNull": ["$custom_permissions", []]},
                }
            },
        ]
        cursor = self.memberships.aggregate(pipeline)
        rows = await cursor.to_list(length=1)
        return rows[0] if rows else None

    async def get_role(self, role_id: str, tenant_id: str) -> Optional[dict]:
        oid = to_object_id(role_id)
        if oid is None:
            return None
        return await self.roles.find_one({"_id": oid, "tenant_id": tenant_id})
