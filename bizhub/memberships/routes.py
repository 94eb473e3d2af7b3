"""
Membership Routes: staff access to the acting tenant.

Endpoints:
    GET     /                  List memberships              staff.view
    POST    /                  Add a user with a role        staff.create
    PUT     /{id}              Change role / custom perms    staff.edit
    POST    /{id}/deactivate   Revoke or suspend             staff.delete
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from bizhub.config import get_database
from bizhub.middleware import get_access_context, get_access_control, with_permissions
from bizhub.rbac import ADMIN_BYPASS, Permission
from bizhub.utils import success_response
from .schemas import (
    AddMemberRequest,
    DeactivateMembershipRequest,
    MembershipStatusEnum,
    UpdateMembershipRequest,
)
from .service import MembershipService

memberships_router = APIRouter()


def _service(request: Request, db: AsyncIOMotorDatabase) -> MembershipService:
    ctx = get_access_context(request)
    return MembershipService(
        db,
        ctx.tenant_id,
        actor=ctx.user,
        request=request,
        sessions=get_access_control(request).sessions,
    )


@memberships_router.get("/")
@with_permissions(Permission.STAFF_VIEW, bypass=ADMIN_BYPASS)
async def list_memberships(
    request: Request,
    status: Optional[MembershipStatusEnum] = Query(None),
    role_id: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    members, total = await _service(request, db).list_memberships(
        status_filter=status.value if status else None,
        role_id=role_id,
        limit=limit,
        offset=offset,
    )
    return success_response(
        data={"memberships": members, "total": total, "limit": limit, "offset": offset}
    )


@memberships_router.post("/")
@with_permissions(Permission.STAFF_CREATE, bypass=ADMIN_BYPASS)
async def add_member(
    request: Request,
    body: AddMemberRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    member = await _service(request, db).add_member(
        email=body.email,
        role_id=body.role_id,
        custom_permissions=body.custom_permissions,
        name=body.name,
    )
    return success_response(data=member, message="Member added", code=201)


@memberships_router.put("/{membership_id}")
@with_permissions(Permission.STAFF_EDIT, bypass=ADMIN_BYPASS)
async def update_membership(
    request: Request,
    membership_id: str,
    body: UpdateMembershipRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    member = await _service(request, db).update_membership(
        membership_id,
        role_id=body.role_id,
        custom_permissions=body.custom_permissions,
    )
    return success_response(data=member, message="Membership updated")


@memberships_router.post("/{membership_id}/deactivate")
@with_permissions(Permission.STAFF_DELETE, bypass=ADMIN_BYPASS)
async def deactivate_membership(
    request: Request,
    membership_id: str,
    body: DeactivateMembershipRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    member = await _service(request, db).deactivate_membership(
        membership_id, new_status=body.status, reason=body.reason
    )
    return success_response(data=member, message=f"Membership {body.status.value}")
