from .service import TenantService
from .routes import setup_router, tenants_router

__all__ = ["TenantService", "setup_router", "tenants_router"]
