"""
Audit Service: log and query audit trail entries.

Collection: audit_logs (shared, tenant-scoped by tenant_id)

Usage from other services:
    audit = AuditService(db, tenant_id)
    await audit.log(
        module=AuditModuleEnum.ROLES,
        action=AuditActionEnum.UPDATE,
        actor=principal,
        resource_id=role_id,
        description="Updated role 'Cashier'",
        before=old_doc, after=new_doc,
        request=request,
        session=session,          # inside a transaction
    )
"""

from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from starlette.requests import Request

from bizhub.rbac import Principal
from bizhub.tenant import get_tenant_collection
from bizhub.utils import serialize_mongo_doc, to_object_id
from .schemas import AuditActionEnum, AuditModuleEnum


def _diff_fields(before: dict | None, after: dict | None) -> list[str]:
    """
    Compare two dicts and return the sorted field names that changed.
    Ignores metadata fields like _id, updated_at, created_at.
    """
    if not before or not after:
        return []

    skip = {"_id", "updated_at", "created_at", "created_by", "updated_by"}
    return sorted(
        key
        for key in set(before) | set(after)
        if key not in skip and before.get(key) != after.get(key)
    )


class AuditService:
    def __init__(self, db: AsyncIOMotorDatabase, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id
        self.logs = get_tenant_collection(db, tenant_id, "audit_logs")

    async def log(
        self,
        module: AuditModuleEnum | str,
        action: AuditActionEnum | str,
        actor: Optional[Principal] = None,
        resource_id: str | None = None,
        description: str = "",
        before: dict | Any = None,
        after: dict | Any = None,
        request: Optional[Request] = None,
        session=None,
    ) -> dict:
        """
        Record an audit log entry. Call this from any service after a
        create/update/delete operation, passing the transaction session
        so the entry commits or rolls back with the change.
        """
        if isinstance(before, dict):
            before = serialize_mongo_doc(before)
        if isinstance(after, dict):
            after = serialize_mongo_doc(after)

        changed_fields = _diff_fields(before, after) if before and after else None

        entry = {
            "module": AuditModuleEnum(module).value,
            "action": AuditActionEnum(action).value,
            "user_id": actor.id if actor else None,
            "user_email": actor.email if actor else None,
            "user_role": actor.global_role.value if actor else None,
            "resource_id": resource_id,
            "description": description,
            "before": before,
            "after": after,
            "changed_fields": changed_fields,
            "ip_address": request.client.host if request and request.client else None,
            "http_method": request.method if request else None,
            "endpoint": request.url.path if request else None,
            "timestamp": datetime.now(timezone.utc),
        }

        result = await self.logs.insert_one(entry, session=session)
        entry["_id"] = result.inserted_id
        return serialize_mongo_doc(entry)

    async def list_logs(
        self,
        module: str | None = None,
        action: str | None = None,
        user_id: str | None = None,
        resource_id: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[dict], int]:
        """
        Query audit logs with optional filters.
        Results sorted by most recent first.
        """
        exact = {"module": module, "action": action, "user_id": user_id, "resource_id": resource_id}
        filters: dict = {k: v for k, v in exact.items() if v}
        window = {"$gte": from_date, "$lte": to_date}
        if from_date or to_date:
            filters["timestamp"] = {op: v for op, v in window.items() if v}

        total = await self.logs.count_documents(filters)
        cursor = (
            self.logs.find(filters)
            .sort("timestamp", -1)
            .skip(offset)
            .limit(limit)
        )
        docs = [serialize_mongo_doc(d) async for d in cursor]
        return docs, total

    async def get_log(self, log_id: str) -> dict:
        """Single audit entry of this tenant, with full before/after data."""
        oid = to_object_id(log_id)
        if oid is None:
            raise HTTPException(status_code=400, detail="Invalid audit log ID")
        doc = await self.logs.find_one({"_id": oid})
        if not doc:
            raise HTTPException(status_code=404, detail="Audit log not found")
        return serialize_mongo_doc(doc)

    async def get_resource_history(
        self, resource_id: str, limit: int = 20
    ) -> list[dict]:
        """Every recorded change to one resource of this tenant, newest first."""
        cursor = (
            self.logs.find({"resource_id": resource_id})
            .sort("timestamp", -1)
            .limit(limit)
        )
        return [serialize_mongo_doc(d) async for d in cursor]
