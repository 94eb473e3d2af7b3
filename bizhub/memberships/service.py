"""
Membership service: who belongs to a tenant, with which role.

Collection: memberships (tenant-scoped by tenant_id)
    {_id, tenant_id, user_id, role_id, custom_permissions[], status,
     joined_at, updated_at}

At most one active membership per (tenant, user). Memberships are never
hard-deleted; removal sets status to revoked or suspended.
"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError
from starlette.requests import Request

from bizhub.audit import AuditActionEnum, AuditModuleEnum, AuditService
from bizhub.auth import SessionStore, generate_temp_password, hash_password
from bizhub.config import transaction
from bizhub.rbac import GlobalRole, Principal
from bizhub.roles import validate_permission_keys
from bizhub.tenant import get_global_collection, get_tenant_collection
from bizhub.utils import Logger, serialize_mongo_doc, to_object_id
from .schemas import MembershipStatusEnum

logger = Logger("rbac")


def _already_member() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="User already has an active membership in this tenant",
    )


class MembershipService:
    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        tenant_id: str,
        actor: Optional[Principal] = None,
        request: Optional[Request] = None,
        sessions: Optional[SessionStore] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.actor = actor
        self.request = request
        self.sessions = sessions
        self.memberships = get_tenant_collection(db, tenant_id, "memberships")
        self.roles = get_tenant_collection(db, tenant_id, "roles")
        self.users = get_global_collection(db, "users")
        self.audit = AuditService(db, tenant_id)

    # ── Helpers ──────────────────────────────────────────────
    async def _get_membership_doc(self, membership_id: str) -> dict:
        oid = to_object_id(membership_id)
        if oid is None:
            raise HTTPException(status_code=400, detail="Invalid membership ID")
        doc = await self.memberships.find_one({"_id": oid})
        if not doc:
            raise HTTPException(status_code=404, detail="Membership not found")
        return doc

    async def _get_assignable_role(self, role_id: str) -> dict:
        """A role of this tenant; lookup is by (tenant_id, role_id)."""
        oid = to_object_id(role_id)
        role = await self.roles.find_one({"_id": oid}) if oid else None
        if not role:
            raise HTTPException(status_code=404, detail="Role not found in this tenant")
        if not role.get("is_active", True):
            raise HTTPException(status_code=400, detail="Role is not active")
        return role

    # ── Queries ──────────────────────────────────────────────
    async def list_memberships(
        self,
        status_filter: Optional[str] = None,
        role_id: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict], int]:
        filters: dict = {}
        if status_filter:
            filters["status"] = status_filter
        if role_id:
            filters["role_id"] = role_id

        total = await self.memberships.count_documents(filters)
        cursor = self.memberships.find(filters).sort("joined_at", -1).skip(offset).limit(limit)
        members = [serialize_mongo_doc(d) async for d in cursor]

        user_oids = [oid for oid in (to_object_id(m["user_id"]) for m in members) if oid]
        users = {
            str(u["_id"]): u
            async for u in self.users.find(
                {"_id": {"$in": user_oids}}, {"email": 1, "name": 1, "is_active": 1}
            )
        }
        for member in members:
            user = users.get(member["user_id"])
            member["user"] = serialize_mongo_doc(user) if user else None
        return members, total

    # ── Mutations ────────────────────────────────────────────
    async def add_member(
        self,
        email: str,
        role_id: str,
        custom_permissions: list[str],
        name: Optional[str] = None,
    ) -> dict:
        """
        Give a user an active membership with ``role_id``.

        Unknown emails get a new account when ``name`` is supplied; the
        temporary password is returned once.
        """
        role = await self._get_assignable_role(role_id)
        custom = validate_permission_keys(custom_permissions)
        email = email.strip().lower()
        now = datetime.now(timezone.utc)

        temp_password = None
        user = await self.users.find_one({"email": email}, {"password": 0})
        if user:
            user_id = str(user["_id"])
            existing = await self.memberships.find_one({"user_id": user_id, "status": "active"})
            if existing:
                raise _already_member()
        elif not name:
            raise HTTPException(
                status_code=404, detail="No account for this email; supply a name to create one"
            )

        async with transaction(self.db) as session:
            if not user:
                temp_password = generate_temp_password()
                user = {
                    "email": email,
                    "name": name,
                    "password": hash_password(temp_password),
                    "global_role": GlobalRole.USER.value,
                    "is_active": True,
                    "created_at": now,
                }
                try:
                    result = await self.users.insert_one(user, session=session)
                except DuplicateKeyError:
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail="An account with this email was just created; retry the invite",
                    ) from None
                user["_id"] = result.inserted_id
                user.pop("password")
                user_id = str(result.inserted_id)

            doc = {
                "user_id": user_id,
                "role_id": str(role["_id"]),
                "custom_permissions": custom,
                "status": MembershipStatusEnum.ACTIVE.value,
                "invited_by": self.actor.id if self.actor else None,
                "joined_at": now,
                "updated_at": now,
            }
            try:
                result = await self.memberships.insert_one(doc, session=session)
            except DuplicateKeyError:
                raise _already_member() from None
            doc["_id"] = result.inserted_id
            await self.audit.log(
                module=AuditModuleEnum.MEMBERSHIPS,
                action=AuditActionEnum.CREATE,
                actor=self.actor,
                resource_id=str(result.inserted_id),
                description=f"Added {email} as '{role['name']}'",
                after=doc,
                request=self.request,
                session=session,
            )

        logger.info(f"User {user_id} joined tenant {self.tenant_id} as role {role['_id']}")
        data = serialize_mongo_doc(doc)
        data["user"] = serialize_mongo_doc(user)
        if temp_password:
            data["temp_password"] = temp_password
        return data

    async def update_membership(
        self,
        membership_id: str,
        role_id: Optional[str] = None,
        custom_permissions: Optional[list[str]] = None,
    ) -> dict:
        """Change role and/or custom permissions in one atomic write."""
        existing = await self._get_membership_doc(membership_id)
        if existing.get("status") == MembershipStatusEnum.REVOKED.value:
            raise HTTPException(status_code=400, detail="Revoked memberships cannot be changed")

        changes: dict = {}
        if role_id is not None:
            role = await self._get_assignable_role(role_id)
            changes["role_id"] = str(role["_id"])
        if custom_permissions is not None:
            changes["custom_permissions"] = validate_permission_keys(custom_permissions)
        if not changes:
            raise HTTPException(status_code=400, detail="No fields to update")
        changes["updated_at"] = datetime.now(timezone.utc)

        async with transaction(self.db) as session:
            await self.memberships.update_one(
                {"_id": existing["_id"]}, {"$set": changes}, session=session
            )
            updated = {**existing, **changes}
            await self.audit.log(
                module=AuditModuleEnum.MEMBERSHIPS,
                action=AuditActionEnum.UPDATE,
                actor=self.actor,
                resource_id=membership_id,
                description=f"Changed access of user {existing['user_id']}",
                before=existing,
                after=updated,
                request=self.request,
                session=session,
            )

        logger.info(f"Membership {membership_id} updated in tenant {self.tenant_id}: {sorted(changes)}")
        return serialize_mongo_doc(updated)

    async def deactivate_membership(
        self,
        membership_id: str,
        new_status: MembershipStatusEnum = MembershipStatusEnum.REVOKED,
        reason: Optional[str] = None,
    ) -> dict:
        if new_status is MembershipStatusEnum.ACTIVE:
            raise HTTPException(status_code=400, detail="Use a non-active status to deactivate")

        existing = await self._get_membership_doc(membership_id)
        if self.actor and existing["user_id"] == self.actor.id:
            raise HTTPException(status_code=400, detail="You cannot deactivate your own membership")
        if existing.get("status") == new_status.value:
            raise HTTPException(status_code=400, detail=f"Membership is already {new_status.value}")

        changes = {
            "status": new_status.value,
            "status_reason": reason,
            "updated_at": datetime.now(timezone.utc),
        }
        async with transaction(self.db) as session:
            await self.memberships.update_one(
                {"_id": existing["_id"]}, {"$set": changes}, session=session
            )
            updated = {**existing, **changes}
            await self.audit.log(
                module=AuditModuleEnum.MEMBERSHIPS,
                action=AuditActionEnum.DEACTIVATE,
                actor=self.actor,
                resource_id=membership_id,
                description=f"Membership of user {existing['user_id']} set to {new_status.value}",
                before=existing,
                after=updated,
                request=self.request,
                session=session,
            )

        if self.sessions is not None:
            closed = await self.sessions.revoke_user(existing["user_id"], self.tenant_id)
            logger.info(f"Revoked {closed} open sessions of user {existing['user_id']}")

        return serialize_mongo_doc(updated)
