from .service import RoleService, validate_permission_keys
from .routes import roles_router

__all__ = ["RoleService", "validate_permission_keys", "roles_router"]
