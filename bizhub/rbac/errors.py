"""
Access-control error taxonomy.

Each error knows its HTTP status, a machine-readable code and the message
and details that are safe to show a client. Anything diagnostic (which
permissions the caller actually holds, why a tenant was refused) stays in
server-side logs.
"""

from typing import Any, Optional, Sequence

from fastapi.responses import JSONResponse
from starlette import status

from bizhub.utils import error_response


class AccessError(Exception):
    status_code: int = status.HTTP_403_FORBIDDEN
    code: str = "ACCESS_DENIED"
    message: str = "Access denied"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        reason: Optional[str] = None,
    ):
        self.message = message or self.message
        self.details = details
        # Server-side only
        self.reason = reason or self.message
        super().__init__(self.reason)

    def to_response(self) -> JSONResponse:
        headers = None
        if self.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return error_response(
            message=self.message,
            status_code=self.status_code,
            code=self.code,
            details=self.details,
            headers=headers,
        )


class TenantAccessDenied(AccessError):
    """Tenant missing, unknown or not active. Clients cannot tell which."""

    code = "TENANT_ACCESS_DENIED"
    message = "Tenant access denied"

    def __init__(self, reason: Optional[str] = None):
        super().__init__(reason=reason)


class TenantNotFound(TenantAccessDenied):
    pass


class TenantInactive(TenantAccessDenied):
    pass


class TenantMismatch(AccessError):
    """A tenant id from the request payload or transport disagrees with the resolved tenant."""

    code = "TENANT_MISMATCH"
    message = "Request tenant does not match the authenticated tenant"


class AuthRequired(AccessError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_REQUIRED"
    message = "Authentication required"

    def __init__(self, reason: Optional[str] = None):
        super().__init__(reason=reason)


class InsufficientPermissions(AccessError):
    code = "INSUFFICIENT_PERMISSIONS"

    def __init__(self, required: Sequence[str], require_all: bool = False):
        logic = "ALL" if require_all else "ANY"
        self.required = list(required)
        self.require_all = require_all
        super().__init__(
            message=f"Access denied. Required permissions ({logic}): {', '.join(self.required)}",
            details={"requiredPermissions": self.required, "requireAll": require_all},
        )


class SystemRoleViolation(AccessError):
    code = "SYSTEM_ROLE_PROTECTED"
    message = "System roles are protected"


class AccessServiceError(AccessError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "PERMISSION_SERVICE_ERROR"
    message = "Permission service error"

    def __init__(self, reason: Optional[str] = None):
        super().__init__(reason=reason)
