"""Tenant service: provisioning, status changes, subdomain availability."""

from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError
from starlette.requests import Request

from bizhub.audit import AuditActionEnum, AuditModuleEnum, AuditService
from bizhub.auth import generate_temp_password, hash_password
from bizhub.config import transaction
from bizhub.rbac import GlobalRole, Principal
from bizhub.rbac.roles import OWNER_ROLE_NAME, SYSTEM_ROLE_TEMPLATES
from bizhub.tenant import (
    RESERVED_SUBDOMAINS,
    TenantResolver,
    TenantStatus,
    get_global_collection,
    get_tenant_collection,
)
from bizhub.utils import Logger, serialize_mongo_doc, to_object_id
from .schemas import TenantSetupRequest

logger = Logger("tenant")


def _subdomain_taken() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Tenant with this subdomain already exists",
    )


class TenantService:
    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        resolver: Optional[TenantResolver] = None,
        actor: Optional[Principal] = None,
        request: Optional[Request] = None,
    ):
        self.db = db
        self.resolver = resolver
        self.actor = actor
        self.request = request
        self.tenants = get_global_collection(db, "tenants")
        self.users = get_global_collection(db, "users")

    async def subdomain_available(self, subdomain: str) -> bool:
        if subdomain in RESERVED_SUBDOMAINS:
            return False
        existing = await self.tenants.find_one({"subdomain": subdomain})
        return existing is None

    async def setup_tenant(self, data: TenantSetupRequest) -> dict:
        """
        Full tenant setup, in one transaction:
          1. Check subdomain uniqueness
          2. Create the tenant document
          3. Seed the system roles
          4. Create (or reuse) the owner account
          5. Give the owner an active Owner membership
        """
        # ── 1. Uniqueness check ──────────────────────────────────
        if not await self.subdomain_available(data.subdomain):
            raise _subdomain_taken()

        now = datetime.now(timezone.utc)
        temp_password = None
        owner_email = data.owner_email.lower()

        async with transaction(self.db) as session:
            # ── 2. Create tenant ─────────────────────────────────
            tenant_doc = {
                "name": data.name,
                "subdomain": data.subdomain,
                "email": data.email,
                "phone": data.phone,
                "description": data.description,
                "plan": data.plan.value,
                "status": TenantStatus.ACTIVE.value,
                "created_at": now,
                "updated_at": now,
            }
            try:
                result = await self.tenants.insert_one(tenant_doc, session=session)
            except DuplicateKeyError:
                raise _subdomain_taken() from None
            tenant_id = str(result.inserted_id)

            # ── 3. Seed system roles ─────────────────────────────
            roles = get_tenant_collection(self.db, tenant_id, "roles")
            role_docs = [
                {
                    "name": template.name,
                    "description": template.description,
                    "level": template.level,
                    "permissions": sorted(p.value for p in template.permissions),
                    "is_system_role": True,
                    "is_active": True,
                    "created_at": now,
                    "updated_at": now,
                }
                for template in SYSTEM_ROLE_TEMPLATES
            ]
            seeded = await roles.insert_many(role_docs, session=session)
            role_ids = dict(zip((t.name for t in SYSTEM_ROLE_TEMPLATES), seeded.inserted_ids))

            # ── 4. Owner account ─────────────────────────────────
            owner = await self.users.find_one({"email": owner_email}, session=session)
            if owner:
                owner_id = str(owner["_id"])
            else:
                temp_password = generate_temp_password()
                user_result = await self.users.insert_one(
                    {
                        "email": owner_email,
                        "name": data.owner_name,
                        "password": hash_password(temp_password),
                        "global_role": GlobalRole.USER.value,
                        "is_active": True,
                        "created_at": now,
                    },
                    session=session,
                )
                owner_id = str(user_result.inserted_id)

            # ── 5. Owner membership ──────────────────────────────
            memberships = get_tenant_collection(self.db, tenant_id, "memberships")
            await memberships.insert_one(
                {
                    "user_id": owner_id,
                    "role_id": str(role_ids[OWNER_ROLE_NAME]),
                    "custom_permissions": [],
                    "status": "active",
                    "joined_at": now,
                    "updated_at": now,
                },
                session=session,
            )
            await self.tenants.update_one(
                {"_id": result.inserted_id},
                {"$set": {"owner_id": owner_id}},
                session=session,
            )

            await AuditService(self.db, tenant_id).log(
                module=AuditModuleEnum.TENANTS,
                action=AuditActionEnum.PROVISION,
                actor=self.actor,
                resource_id=tenant_id,
                description=f"Provisioned tenant '{data.name}' ({data.subdomain})",
                after={**tenant_doc, "_id": result.inserted_id},
                request=self.request,
                session=session,
            )

        logger.info(f"Tenant {tenant_id} ({data.subdomain}) provisioned, owner {owner_id}")
        return {
            "tenant_id": tenant_id,
            "tenant_name": data.name,
            "subdomain": data.subdomain,
            "plan": data.plan,
            "owner_user_id": owner_id,
            "owner_email": owner_email,
            "temporary_password": temp_password,
            "roles_seeded": [t.name for t in SYSTEM_ROLE_TEMPLATES],
            "setup_completed": True,
            "created_at": now,
            "message": (
                "Tenant setup completed. Change the temporary password on first login."
                if temp_password
                else "Tenant setup completed. Existing account added as owner."
            ),
        }

    async def get_tenant(self, tenant_id: str) -> dict:
        oid = to_object_id(tenant_id)
        doc = await self.tenants.find_one({"_id": oid}) if oid else None
        if not doc:
            raise HTTPException(status_code=404, detail="Tenant not found")
        return serialize_mongo_doc(doc)

    async def set_status(
        self,
        tenant_id: str,
        new_status: TenantStatus,
        reason: Optional[str] = None,
    ) -> dict:
        """Change a tenant's status and drop it from the resolution cache."""
        oid = to_object_id(tenant_id)
        existing = await self.tenants.find_one({"_id": oid}) if oid else None
        if not existing:
            raise HTTPException(status_code=404, detail="Tenant not found")
        if existing.get("status") == new_status.value:
            raise HTTPException(status_code=400, detail=f"Tenant is already {new_status.value}")

        changes = {
            "status": new_status.value,
            "status_reason": reason,
            "updated_at": datetime.now(timezone.utc),
        }
        async with transaction(self.db) as session:
            await self.tenants.update_one({"_id": oid}, {"$set": changes}, session=session)
            updated = {**existing, **changes}
            await AuditService(self.db, tenant_id).log(
                module=AuditModuleEnum.TENANTS,
                action=AuditActionEnum.STATUS_CHANGE,
                actor=self.actor,
                resource_id=tenant_id,
                description=f"Tenant status {existing.get('status')} -> {new_status.value}",
                before=existing,
                after=updated,
                request=self.request,
                session=session,
            )

        if self.resolver is not None:
            self.resolver.invalidate(tenant_id=tenant_id, subdomain=existing.get("subdomain"))

        logger.info(
            f"Tenant {tenant_id} status {existing.get('status')} -> {new_status.value}"
            f" by {self.actor.id if self.actor else 'system'}"
        )
        return serialize_mongo_doc(updated)
