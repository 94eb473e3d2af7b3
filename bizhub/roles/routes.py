"""
Role Routes: tenant role management.

Endpoints:
    GET     /                  List roles (search, filters, sort, pagination, stats)
    GET     /permissions       Permission catalog
    GET     /{id}              Role details (optional users, permission coverage)
    POST    /                  Create role
    PUT     /{id}              Update role (system roles: top global role only)
    DELETE  /{id}              Delete role (system roles: never)

Permission: staff.roles, with the platform admin bypass.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from bizhub.config import get_database
from bizhub.middleware import get_access_context, get_access_control, with_permissions
from bizhub.rbac import ADMIN_BYPASS, Permission, catalog
from bizhub.utils import success_response
from .schemas import CreateRoleRequest, RoleSortEnum, SortOrderEnum, UpdateRoleRequest
from .service import RoleService

roles_router = APIRouter()


def _service(request: Request, db: AsyncIOMotorDatabase) -> RoleService:
    ctx = get_access_context(request)
    return RoleService(
        db,
        ctx.tenant_id,
        guard=get_access_control(request).role_guard,
        actor=ctx.user,
        request=request,
    )


@roles_router.get("/")
@with_permissions(Permission.STAFF_ROLES, bypass=ADMIN_BYPASS)
async def list_roles(
    request: Request,
    search: Optional[str] = Query(None),
    active: Optional[bool] = Query(None),
    system_role: Optional[bool] = Query(None),
    min_level: Optional[int] = Query(None, ge=1),
    max_level: Optional[int] = Query(None, ge=1),
    sort_by: RoleSortEnum = Query(RoleSortEnum.LEVEL),
    sort_order: SortOrderEnum = Query(SortOrderEnum.ASC),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    include_permissions: bool = Query(False),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """List roles of the acting tenant with member counts."""
    result = await _service(request, db).list_roles(
        search=search,
        active=active,
        system_role=system_role,
        min_level=min_level,
        max_level=max_level,
        sort_by=sort_by.value,
        sort_order=sort_order.value,
        page=page,
        limit=limit,
        include_permissions=include_permissions,
    )
    if include_permissions:
        result["standard_permissions"] = catalog()
    return success_response(data=result)


@roles_router.get("/permissions")
@with_permissions(Permission.STAFF_ROLES, bypass=ADMIN_BYPASS)
async def list_permissions(request: Request):
    """The closed permission catalog with descriptions and groups."""
    return success_response(data={"permissions": catalog()})


@roles_router.get("/{role_id}")
@with_permissions(Permission.STAFF_ROLES, bypass=ADMIN_BYPASS)
async def get_role(
    request: Request,
    role_id: str,
    include_users: bool = Query(False),
    include_permission_details: bool = Query(False),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    result = await _service(request, db).get_role(
        role_id,
        include_users=include_users,
        include_permission_details=include_permission_details,
    )
    return success_response(data=result)


@roles_router.post("/")
@with_permissions(Permission.STAFF_ROLES, bypass=ADMIN_BYPASS)
async def create_role(
    request: Request,
    body: CreateRoleRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    role = await _service(request, db).create_role(body.model_dump())
    return success_response(data=role, message="Role created successfully", code=201)


@roles_router.put("/{role_id}")
@with_permissions(Permission.STAFF_ROLES, bypass=ADMIN_BYPASS)
async def update_role(
    request: Request,
    role_id: str,
    body: UpdateRoleRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    role = await _service(request, db).update_role(role_id, body.model_dump(exclude_unset=True))
    return success_response(data=role, message="Role updated successfully")


@roles_router.delete("/{role_id}")
@with_permissions(Permission.STAFF_ROLES, bypass=ADMIN_BYPASS)
async def delete_role(
    request: Request,
    role_id: str,
    force: bool = Query(False),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    result = await _service(request, db).delete_role(role_id, force=force)
    return success_response(data=result, message="Role deleted successfully")
