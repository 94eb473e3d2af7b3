from .collections import (
    RESERVED_SUBDOMAINS,
    TenantScopedCollection,
    get_global_collection,
    get_tenant_collection,
    validate_subdomain,
)
from .resolver import (
    TenantContext,
    TenantPlan,
    TenantResolver,
    TenantStatus,
    extract_subdomain,
)

__all__ = [
    "RESERVED_SUBDOMAINS",
    "TenantScopedCollection",
    "get_global_collection",
    "get_tenant_collection",
    "validate_subdomain",
    "TenantContext",
    "TenantPlan",
    "TenantResolver",
    "TenantStatus",
    "extract_subdomain",
]
