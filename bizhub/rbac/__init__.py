from .permissions import (
    ALL_PERMISSIONS,
    Permission,
    UnknownPermissionError,
    catalog,
    parse_permissions,
)
from .roles import ADMIN_BYPASS, NO_BYPASS, BypassPolicy, GlobalRole
from .context import Principal
from .errors import (
    AccessError,
    AccessServiceError,
    AuthRequired,
    InsufficientPermissions,
    SystemRoleViolation,
    TenantAccessDenied,
    TenantInactive,
    TenantMismatch,
    TenantNotFound,
)
from .store import AccessStore
from .resolver import EffectivePermissions, PermissionResolver
from .engine import AccessDecisionEngine, Decision, DecisionOutcome
from .guard import RoleOperation, SystemRoleGuard

__all__ = [
    "ALL_PERMISSIONS",
    "Permission",
    "UnknownPermissionError",
    "catalog",
    "parse_permissions",
    "ADMIN_BYPASS",
    "NO_BYPASS",
    "BypassPolicy",
    "GlobalRole",
    "Principal",
    "AccessError",
    "AccessServiceError",
    "AuthRequired",
    "InsufficientPermissions",
    "SystemRoleViolation",
    "TenantAccessDenied",
    "TenantInactive",
    "TenantMismatch",
    "TenantNotFound",
    "AccessStore",
    "EffectivePermissions",
    "PermissionResolver",
    "AccessDecisionEngine",
    "Decision",
    "DecisionOutcome",
    "RoleOperation",
    "SystemRoleGuard",
]
