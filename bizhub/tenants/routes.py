from fastapi import APIRouter, Depends, HTTPException, Request, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from bizhub.config import get_database, settings
from bizhub.middleware import get_access_context, get_access_control, with_global_role
from bizhub.rbac import GlobalRole
from bizhub.tenant import validate_subdomain
from bizhub.utils import success_response
from .schemas import TenantSetupRequest, TenantSetupResponse, TenantStatusUpdateRequest
from .service import TenantService

# Public provisioning endpoints (/base/api/v1)
setup_router = APIRouter()

# Platform administration (/api/v1/tenants)
tenants_router = APIRouter()


def _require_app_key(request: Request):
    """Guard: only platform tooling holding the app-key can provision tenants."""
    if request.headers.get("app-key") != settings.app_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid app-key",
        )
    return True


@setup_router.post("/set-up", response_model=TenantSetupResponse, status_code=201)
async def setup_tenant(
    request: Request,
    body: TenantSetupRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
    _: bool = Depends(_require_app_key),
):
    """Provision a new tenant with system roles and an owner."""
    svc = TenantService(db, request=request)
    return await svc.setup_tenant(body)


@setup_router.get("/check-subdomain/{subdomain}")
async def check_subdomain(
    subdomain: str,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Check whether a tenant subdomain is available."""
    try:
        normalized = validate_subdomain(subdomain)
    except ValueError as exc:
        return {"subdomain": subdomain, "available": False, "message": str(exc)}

    available = await TenantService(db).subdomain_available(normalized)
    return {
        "subdomain": normalized,
        "available": available,
        "message": "Subdomain is available" if available else "Subdomain is taken",
    }


@tenants_router.get("/{tenant_id}")
@with_global_role(GlobalRole.SUPER_ADMIN)
async def get_tenant(
    request: Request,
    tenant_id: str,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    return success_response(data=await TenantService(db).get_tenant(tenant_id))


@tenants_router.patch("/{tenant_id}/status")
@with_global_role(GlobalRole.SUPER_ADMIN)
async def update_tenant_status(
    request: Request,
    tenant_id: str,
    body: TenantStatusUpdateRequest,
    db: AsyncIOMotorDatabase = Depends(get_database),
):
    """Activate, deactivate, suspend or archive a tenant. Platform super admins only."""
    svc = TenantService(
        db,
        resolver=get_access_control(request).tenants,
        actor=get_access_context(request).user,
        request=request,
    )
    tenant = await svc.set_status(tenant_id, body.status, reason=body.reason)
    return success_response(data=tenant, message=f"Tenant {body.status.value}")
