from .schemas import AuditActionEnum, AuditModuleEnum
from .service import AuditService
from .routes import audit_router

__all__ = ["AuditActionEnum", "AuditModuleEnum", "AuditService", "audit_router"]
