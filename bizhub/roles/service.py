"""
Role service: tenant role management.

Collection: roles (tenant-scoped by tenant_id)

Every mutation runs in one transaction together with its audit entry, so
a permission-set change is never observed half-applied. System roles are
protected by SystemRoleGuard on top of the route's staff.roles check.
"""

import math
import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError
from starlette.requests import Request

from bizhub.audit import AuditActionEnum, AuditModuleEnum, AuditService
from bizhub.config import transaction
from bizhub.rbac import (
    ALL_PERMISSIONS,
    Permission,
    Principal,
    RoleOperation,
    SystemRoleGuard,
    SystemRoleViolation,
    UnknownPermissionError,
    parse_permissions,
)
from bizhub.tenant import get_global_collection, get_tenant_collection
from bizhub.utils import Logger, serialize_mongo_doc, to_object_id

logger = Logger("rbac")

# Memberships that still hold a role (revoked ones are history)
_HOLDING = {"$ne": "revoked"}


def _name_taken() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail="Role name already exists in this tenant",
    )


def validate_permission_keys(keys: list[str]) -> list[str]:
    """Catalog-checked, de-duplicated, sorted keys; 400 listing any unknown key."""
    try:
        parsed = parse_permissions(keys)
    except UnknownPermissionError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": "Invalid permissions detected",
                "invalid_permissions": exc.keys,
                "valid_permissions": [p.value for p in Permission],
            },
        ) from None
    return sorted(p.value for p in parsed)


def permission_details(keys: list[str]) -> dict:
    assigned = set(keys)
    total = len(ALL_PERMISSIONS)
    known = [p for p in Permission if p.value in assigned]
    return {
        "assigned_permissions": [
            {"key": p.value, "description": p.description, "group": p.group} for p in known
        ],
        "available_permissions": [
            {"key": p.value, "description": p.description, "group": p.group, "assigned": p.value in assigned}
            for p in Permission
        ],
        "permission_summary": {
            "total_available": total,
            "total_assigned": len(known),
            "coverage_percentage": round(len(known) / total * 100),
        },
    }


class RoleService:
    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        tenant_id: str,
        guard: SystemRoleGuard,
        actor: Optional[Principal] = None,
        request: Optional[Request] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.guard = guard
        self.actor = actor
        self.request = request
        self.roles = get_tenant_collection(db, tenant_id, "roles")
        self.memberships = get_tenant_collection(db, tenant_id, "memberships")
        self.audit = AuditService(db, tenant_id)

    # ── Helpers ──────────────────────────────────────────────
    async def _get_role_doc(self, role_id: str) -> dict:
        oid = to_object_id(role_id)
        if oid is None:
            raise HTTPException(status_code=400, detail="Invalid role ID")
        role = await self.roles.find_one({"_id": oid})
        if not role:
            raise HTTPException(status_code=404, detail="Role not found")
        return role

    async def _ensure_unique_name(self, name: str, exclude_id=None) -> None:
        query: dict = {"name": name}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if await self.roles.find_one(query):
            raise _name_taken()

    def _require_top_role(self, message: str) -> None:
        if self.actor is None or not self.actor.global_role.is_highest:
            raise SystemRoleViolation(
                message=message,
                reason=f"user {self.actor.id if self.actor else None} tried: {message}",
            )

    async def _member_count(self, role_id: str) -> int:
        return await self.memberships.count_documents({"role_id": role_id, "status": _HOLDING})

    # ── Queries ──────────────────────────────────────────────
    async def list_roles(
        self,
        search: Optional[str] = None,
        active: Optional[bool] = None,
        system_role: Optional[bool] = None,
        min_level: Optional[int] = None,
        max_level: Optional[int] = None,
        sort_by: str = "level",
        sort_order: str = "asc",
        page: int = 1,
        limit: int = 50,
        include_permissions: bool = False,
    ) -> dict:
        """Roles of the tenant with member counts, statistics and pagination."""
        filters: dict = {}
        if search:
            filters["$or"] = [
                {"name": {"$regex": re.escape(search), "$options": "i"}},
                {"description": {"$regex": re.escape(search), "$options": "i"}},
            ]
        if active is not None:
            filters["is_active"] = active
        if system_role is not None:
            filters["is_system_role"] = system_role
        if min_level is not None or max_level is not None:
            level: dict = {}
            if min_level is not None:
                level["$gte"] = min_level
            if max_level is not None:
                level["$lte"] = max_level
            filters["level"] = level

        projection = None if include_permissions else {"permissions": 0}
        total = await self.roles.count_documents(filters)
        cursor = (
            self.roles.find(filters, projection)
            .sort(sort_by, ASCENDING if sort_order == "asc" else DESCENDING)
            .skip((page - 1) * limit)
            .limit(limit)
        )

        roles = []
        async for doc in cursor:
            role = serialize_mongo_doc(doc)
            role["user_count"] = await self._member_count(role["_id"])
            roles.append(role)

        levels = [
            doc async for doc in self.roles.find({}, {"level": 1, "is_active": 1, "is_system_role": 1})
        ]
        statistics = {
            "total_roles": len(levels),
            "active_roles": sum(1 for r in levels if r.get("is_active", True)),
            "system_roles": sum(1 for r in levels if r.get("is_system_role")),
            "avg_role_level": (
                round(sum(r.get("level", 0) for r in levels) / len(levels), 2) if levels else 0
            ),
            "max_role_level": max((r.get("level", 0) for r in levels), default=0),
        }

        total_pages = math.ceil(total / limit) if limit else 0
        return {
            "roles": roles,
            "statistics": statistics,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": total_pages,
                "has_next": page * limit < total,
                "has_prev": page > 1,
            },
        }

    async def get_role(
        self,
        role_id: str,
        include_users: bool = False,
        include_permission_details: bool = False,
    ) -> dict:
        doc = await self._get_role_doc(role_id)
        role = serialize_mongo_doc(doc)
        role["total_users"] = await self.memberships.count_documents({"role_id": role["_id"]})
        role["active_users"] = await self.memberships.count_documents(
            {"role_id": role["_id"], "status": "active"}
        )

        users = None
        if include_users:
            members = [m async for m in self.memberships.find({"role_id": role["_id"]})]
            user_oids = [oid for oid in (to_object_id(m["user_id"]) for m in members) if oid]
            users_col = get_global_collection(self.db, "users")
            by_id = {
                str(u["_id"]): u
                async for u in users_col.find({"_id": {"$in": user_oids}}, {"password": 0})
            }
            users = [
                {
                    **serialize_mongo_doc(by_id.get(m["user_id"], {"_id": m["user_id"]})),
                    "membership_id": str(m["_id"]),
                    "membership_status": m.get("status"),
                    "custom_permissions": m.get("custom_permissions", []),
                }
                for m in members
            ]

        return {
            "role": role,
            "users": users,
            "permission_details": (
                permission_details(doc.get("permissions", [])) if include_permission_details else None
            ),
        }

    # ── Mutations ────────────────────────────────────────────
    async def create_role(self, data: dict) -> dict:
        if data.get("is_system_role"):
            self._require_top_role("Only a super administrator can create system roles")

        await self._ensure_unique_name(data["name"])
        permissions = validate_permission_keys(data.get("permissions") or [])

        now = datetime.now(timezone.utc)
        doc = {
            "name": data["name"],
            "description": data.get("description"),
            "level": data["level"],
            "is_system_role": bool(data.get("is_system_role")),
            "is_active": data.get("is_active", True),
            "permissions": permissions,
            "created_by": self.actor.id if self.actor else None,
            "created_at": now,
            "updated_at": now,
        }

        async with transaction(self.db) as session:
            try:
                result = await self.roles.insert_one(doc, session=session)
            except DuplicateKeyError:
                # lost a race with a concurrent create of the same name
                raise _name_taken() from None
            doc["_id"] = result.inserted_id
            await self.audit.log(
                module=AuditModuleEnum.ROLES,
                action=AuditActionEnum.CREATE,
                actor=self.actor,
                resource_id=str(result.inserted_id),
                description=f"Created role '{doc['name']}'",
                after=doc,
                request=self.request,
                session=session,
            )

        logger.info(f"Role '{doc['name']}' created in tenant {self.tenant_id}")
        return serialize_mongo_doc(doc)

    async def update_role(self, role_id: str, update_data: dict) -> dict:
        existing = await self._get_role_doc(role_id)

        check = await self.guard.validate_role_operation(
            role_id, self.tenant_id, RoleOperation.EDIT, self.actor
        )
        check.raise_for_denial()

        changes = {k: v for k, v in update_data.items() if v is not None}
        if not changes:
            raise HTTPException(status_code=400, detail="No fields to update")

        if existing.get("is_system_role") and changes.get("is_system_role") is False:
            raise SystemRoleViolation(message="Cannot change system role status")
        if changes.get("is_system_role") and not existing.get("is_system_role"):
            self._require_top_role("Only a super administrator can create system roles")

        if "name" in changes and changes["name"] != existing.get("name"):
            await self._ensure_unique_name(changes["name"], exclude_id=existing["_id"])
        if "permissions" in changes:
            changes["permissions"] = validate_permission_keys(changes["permissions"])

        changes["updated_at"] = datetime.now(timezone.utc)
        changes["updated_by"] = self.actor.id if self.actor else None

        async with transaction(self.db) as session:
            try:
                await self.roles.update_one(
                    {"_id": existing["_id"]}, {"$set": changes}, session=session
                )
            except DuplicateKeyError:
                raise _name_taken() from None
            updated = {**existing, **changes}
            await self.audit.log(
                module=AuditModuleEnum.ROLES,
                action=AuditActionEnum.UPDATE,
                actor=self.actor,
                resource_id=role_id,
                description=f"Updated role '{updated['name']}'",
                before=existing,
                after=updated,
                request=self.request,
                session=session,
            )

        logger.info(f"Role {role_id} updated in tenant {self.tenant_id}: {sorted(changes)}")
        return serialize_mongo_doc(updated)

    async def delete_role(self, role_id: str, force: bool = False) -> dict:
        """
        Delete a non-system role.

        While memberships still hold the role the delete is refused with 409,
        unless ``force`` is set: then they are moved to the lowest-level
        active non-system role first.
        """
        check = await self.guard.validate_role_operation(
            role_id, self.tenant_id, RoleOperation.DELETE, self.actor
        )
        check.raise_for_denial()

        existing = await self._get_role_doc(role_id)
        holders = await self._member_count(role_id)

        fallback = None
        if holders and not force:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "message": (
                        f"Cannot delete role with {holders} assigned users. "
                        "Use force=true to reassign them to the default role and delete."
                    ),
                    "assigned_users": holders,
                },
            )
        if holders:
            cursor = (
                self.roles.find(
                    {"is_system_role": False, "is_active": True, "_id": {"$ne": existing["_id"]}}
                )
                .sort("level", ASCENDING)
                .limit(1)
            )
            candidates = [doc async for doc in cursor]
            if not candidates:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail="No active non-system role available to reassign users to",
                )
            fallback = candidates[0]

        async with transaction(self.db) as session:
            if fallback is not None:
                await self.memberships.update_many(
                    {"role_id": role_id, "status": _HOLDING},
                    {"$set": {"role_id": str(fallback["_id"]), "updated_at": datetime.now(timezone.utc)}},
                    session=session,
                )
            await self.roles.delete_one({"_id": existing["_id"]}, session=session)
            await self.audit.log(
                module=AuditModuleEnum.ROLES,
                action=AuditActionEnum.DELETE,
                actor=self.actor,
                resource_id=role_id,
                description=(
                    f"Deleted role '{existing['name']}'"
                    + (f", {holders} members moved to '{fallback['name']}'" if fallback else "")
                ),
                before=existing,
                request=self.request,
                session=session,
            )

        logger.info(f"Role {role_id} deleted from tenant {self.tenant_id}")
        return {
            "message": "Role deleted successfully",
            "reassigned_users": holders if fallback else 0,
            "reassigned_to": str(fallback["_id"]) if fallback else None,
        }
