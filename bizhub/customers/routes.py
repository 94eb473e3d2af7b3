from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from bizhub.config import get_database
from bizhub.middleware import get_access_context, with_permissions
from bizhub.rbac import Permission
from bizhub.utils import success_response
from .schemas import CreateCustomerRequest, UpdateCustomerRequest
from .service import CustomerService

customers_router = APIRouter()


def _service(request: Request, db: AsyncIOMotorDatabase) -> CustomerService:
    ctx = get_access_context(request)
    return CustomerService(db, ctx.tenant_id, actor=ctx.user, request=request)


@customers_router.post("/")
@with_permissions(Permission.CUSTOMERS_CREATE)
async def create_customer(
    request: Request,
    body: CreateCustomerRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Create a new customer for the acting tenant."""
    customer = await _service(request, db).create_customer(body.model_dump(mode="json"))
    return success_response(data=customer, message="Customer created", code=201)


@customers_router.get("/")
@with_permissions(Permission.CUSTOMERS_VIEW)
async def list_customers(
    request: Request,
    q: Optional[str] = Query(None),
    customer_type: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """List customers with optional search and type filter."""
    customers, total = await _service(request, db).list_customers(
        query=q, customer_type=customer_type, limit=limit, offset=offset,
    )
    return success_response(
        data={"customers": customers, "total": total, "limit": limit, "offset": offset}
    )


@customers_router.get("/{customer_id}")
@with_permissions(Permission.CUSTOMERS_VIEW)
async def get_customer(
    request: Request, customer_id: str,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    return success_response(data=await _service(request, db).get_customer(customer_id))


@customers_router.put("/{customer_id}")
@with_permissions(Permission.CUSTOMERS_EDIT)
async def update_customer(
    request: Request, customer_id: str, body: UpdateCustomerRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    customer = await _service(request, db).update_customer(
        customer_id, body.model_dump(mode="json", exclude_unset=True)
    )
    return success_response(data=customer, message="Customer updated")


@customers_router.delete("/{customer_id}")
@with_permissions(Permission.CUSTOMERS_DELETE)
async def delete_customer(
    request: Request, customer_id: str,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Soft-delete a customer by ID."""
    result = await _service(request, db).delete_customer(customer_id)
    return success_response(data=result, message="Customer deleted")
