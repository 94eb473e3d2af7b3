"""
Audit Routes: read-only view of the tenant's audit trail.

Endpoints:
    GET  /                     List audit logs (filter by module, action, user, date)
    GET  /resource/{id}        Complete change history for a specific resource
    GET  /{id}                 Single log entry with full before/after data
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from bizhub.config import get_database
from bizhub.middleware import get_access_context, with_permissions
from bizhub.rbac import Permission
from bizhub.utils import success_response
from .service import AuditService

audit_router = APIRouter()


@audit_router.get("/")
@with_permissions(Permission.SYSTEM_AUDIT)
async def list_audit_logs(
    request: Request,
    module: Optional[str] = Query(None, description="roles, memberships, tenants, customers"),
    action: Optional[str] = Query(None, description="create, update, delete, deactivate, ..."),
    user_id: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """
    List audit logs of the acting tenant.

    Common queries:
        - Role changes today: ?module=roles&action=update&from_date=...
        - Everything one user did: ?user_id=xxx

    Permission: system.audit
    """
    svc = AuditService(db, get_access_context(request).tenant_id)
    logs, total = await svc.list_logs(
        module=module, action=action, user_id=user_id,
        resource_id=resource_id,
        from_date=from_date, to_date=to_date,
        limit=limit, offset=offset,
    )
    return success_response(
        data={"logs": logs, "total": total, "limit": limit, "offset": offset}
    )


@audit_router.get("/resource/{resource_id}")
@with_permissions(Permission.SYSTEM_AUDIT)
async def resource_history(
    request: Request,
    resource_id: str,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Permission: system.audit"""
    svc = AuditService(db, get_access_context(request).tenant_id)
    history = await svc.get_resource_history(resource_id, limit)
    return success_response(data={"resource_id": resource_id, "history": history})


@audit_router.get("/{log_id}")
@with_permissions(Permission.SYSTEM_AUDIT)
async def get_audit_log(
    request: Request,
    log_id: str,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Permission: system.audit"""
    svc = AuditService(db, get_access_context(request).tenant_id)
    return success_response(data=await svc.get_log(log_id))
