"""
Customer service: the reference tenant-scoped resource.

Collection: customers (shared, tenant-scoped by tenant_id)

Every read and write goes through a TenantScopedCollection, so a customer
id from another tenant behaves exactly like an id that does not exist.
Mutations are audited in the same transaction as the write.
"""

import re
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError
from starlette.requests import Request

from bizhub.audit import AuditActionEnum, AuditModuleEnum, AuditService
from bizhub.config import transaction
from bizhub.rbac import Principal
from bizhub.tenant import get_tenant_collection
from bizhub.utils import Logger, serialize_mongo_doc, to_object_id

logger = Logger("customers")

_LIVE = {"is_deleted": {"$ne": True}}
_SEARCH_FIELDS = ("name", "phone", "email", "company_name")


def _phone_taken(phone) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Customer with phone '{phone}' already exists",
    )


class CustomerService:
    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        tenant_id: str,
        actor: Optional[Principal] = None,
        request: Optional[Request] = None,
    ):
        self.db = db
        self.tenant_id = tenant_id
        self.actor = actor
        self.request = request
        self.customers = get_tenant_collection(db, tenant_id, "customers")
        self.audit = AuditService(db, tenant_id)

    def _live(self, customer_id: str) -> dict:
        oid = to_object_id(customer_id)
        if oid is None:
            raise HTTPException(status_code=400, detail="Invalid customer ID")
        return {"_id": oid, **_LIVE}

    async def _ensure_phone_free(self, phone: str, exclude_id=None) -> None:
        query = {"phone": phone, **_LIVE}
        if exclude_id is not None:
            query["_id"] = {"$ne": exclude_id}
        if await self.customers.find_one(query):
            raise _phone_taken(phone)

    async def create_customer(self, data: dict) -> dict:
        await self._ensure_phone_free(data["phone"])

        now = datetime.now(timezone.utc)
        doc = {
            **data,
            "is_deleted": False,
            "created_by": self.actor.id if self.actor else None,
            "created_at": now,
            "updated_at": now,
        }
        async with transaction(self.db) as session:
            try:
                result = await self.customers.insert_one(doc, session=session)
            except DuplicateKeyError:
                raise _phone_taken(doc["phone"]) from None
            doc["_id"] = result.inserted_id
            await self.audit.log(
                module=AuditModuleEnum.CUSTOMERS,
                action=AuditActionEnum.CREATE,
                actor=self.actor,
                resource_id=str(result.inserted_id),
                description=f"Created customer '{doc['name']}'",
                after=doc,
                request=self.request,
                session=session,
            )

        logger.info(f"Customer {result.inserted_id} created in tenant {self.tenant_id}")
        return serialize_mongo_doc(doc)

    async def get_customer(self, customer_id: str) -> dict:
        doc = await self.customers.find_one(self._live(customer_id))
        if not doc:
            raise HTTPException(status_code=404, detail="Customer not found")
        return serialize_mongo_doc(doc)

    async def list_customers(
        self,
        query: Optional[str] = None,
        customer_type: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict], int]:
        filters: dict = dict(_LIVE)
        if query:
            filters["$or"] = [
                {field: {"$regex": re.escape(query), "$options": "i"}} for field in _SEARCH_FIELDS
            ]
        if customer_type:
            filters["customer_type"] = customer_type

        total = await self.customers.count_documents(filters)
        cursor = (
            self.customers.find(filters)
            .sort("created_at", DESCENDING)
            .skip(offset)
            .limit(limit)
        )
        return [serialize_mongo_doc(d) async for d in cursor], total

    async def update_customer(self, customer_id: str, update_data: dict) -> dict:
        """Apply the non-None fields; a changed phone must stay unique in the tenant."""
        live = self._live(customer_id)
        changes = {k: v for k, v in update_data.items() if v is not None}
        if not changes:
            raise HTTPException(status_code=400, detail="No fields to update")
        if "phone" in changes:
            await self._ensure_phone_free(changes["phone"], exclude_id=live["_id"])
        changes["updated_at"] = datetime.now(timezone.utc)
        changes["updated_by"] = self.actor.id if self.actor else None

        async with transaction(self.db) as session:
            try:
                before = await self.customers.find_one_and_update(
                    live,
                    {"$set": changes},
                    return_document=ReturnDocument.BEFORE,
                    session=session,
                )
            except DuplicateKeyError:
                raise _phone_taken(changes.get("phone")) from None
            if not before:
                raise HTTPException(status_code=404, detail="Customer not found")
            after = {**before, **changes}
            await self.audit.log(
                module=AuditModuleEnum.CUSTOMERS,
                action=AuditActionEnum.UPDATE,
                actor=self.actor,
                resource_id=customer_id,
                description=f"Updated customer '{after.get('name')}'",
                before=before,
                after=after,
                request=self.request,
                session=session,
            )

        return serialize_mongo_doc(after)

    async def delete_customer(self, customer_id: str) -> dict:
        """Soft delete: the document stays for the audit trail, hidden from reads."""
        live = self._live(customer_id)
        now = datetime.now(timezone.utc)

        async with transaction(self.db) as session:
            before = await self.customers.find_one_and_update(
                live,
                {"$set": {"is_deleted": True, "deleted_at": now, "deleted_by": self.actor.id if self.actor else None}},
                return_document=ReturnDocument.BEFORE,
                session=session,
            )
            if not before:
                raise HTTPException(status_code=404, detail="Customer not found or already deleted")
            await self.audit.log(
                module=AuditModuleEnum.CUSTOMERS,
                action=AuditActionEnum.DELETE,
                actor=self.actor,
                resource_id=customer_id,
                description=f"Deleted customer '{before.get('name')}'",
                before=before,
                request=self.request,
                session=session,
            )

        logger.info(f"Customer {customer_id} deleted from tenant {self.tenant_id}")
        return {"message": "Customer deleted successfully", "customer_id": customer_id}
