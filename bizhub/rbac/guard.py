"""
System role protection.

Sits on top of the normal permission check for role mutations:
    delete a system role  → always refused
    edit a system role    → only the top global role
    non-system roles      → no extra restriction
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from bizhub.utils import Logger
from .context import Principal
from .errors import AccessServiceError, SystemRoleViolation
from .store import AccessStore

logger = Logger("rbac")


class RoleOperation(str, Enum):
    EDIT = "edit"
    DELETE = "delete"


@dataclass(frozen=True)
class RoleOperationCheck:
    allowed: bool
    error: Optional[str] = None

    def raise_for_denial(self) -> None:
        if not self.allowed:
            raise SystemRoleViolation(message=self.error)


class SystemRoleGuard:
    def __init__(self, store: AccessStore):
        self.store = store

    async def is_system_role(self, role_id: str, tenant_id: str) -> bool:
        try:
            role = await self.store.get_role(role_id, tenant_id)
        except Exception as exc:
            logger.exception(f"System role lookup failed for role {role_id} in tenant {tenant_id}")
            raise AccessServiceError(reason=f"role lookup failed: {exc}") from exc
        return bool(role and role.get("is_system_role"))

    async def validate_role_operation(
        self,
        role_id: str,
        tenant_id: str,
        operation: RoleOperation | str,
        actor: Optional[Principal],
    ) -> RoleOperationCheck:
        operation = RoleOperation(operation)

        if not await self.is_system_role(role_id, tenant_id):
            return RoleOperationCheck(allowed=True)

        if operation is RoleOperation.DELETE:
            logger.warning(
                f"Refused delete of system role {role_id} in tenant {tenant_id} "
                f"by {actor.id if actor else 'anonymous'}"
            )
            return RoleOperationCheck(allowed=False, error="System roles cannot be deleted")

        if actor is None or not actor.global_role.is_highest:
            logger.warning(
                f"Refused edit of system role {role_id} in tenant {tenant_id} "
                f"by {actor.id if actor else 'anonymous'}"
            )
            return RoleOperationCheck(
                allowed=False, error="Only a super administrator can modify system roles"
            )

        return RoleOperationCheck(allowed=True)
