"""
Effective permission resolution.

The effective set for (user, tenant) is the union of the permissions of
the role assigned by the user's single active membership and that
membership's custom permissions. No membership means no permissions.
"""

from dataclasses import dataclass, field
from typing import Optional

from bizhub.utils import Logger
from .errors import AccessServiceError
from .permissions import ALL_PERMISSIONS, Permission, load_stored_permissions
from .roles import GlobalRole
from .store import AccessStore

logger = Logger("rbac")


@dataclass(frozen=True)
class EffectivePermissions:
    role_permissions: frozenset[Permission] = frozenset()
    custom_permissions: frozenset[Permission] = frozenset()
    role_id: Optional[str] = None
    role_name: Optional[str] = None
    membership_id: Optional[str] = None
    # True when granted by the top global role without a membership lookup
    bypass: bool = False
    all: frozenset[Permission] = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "all", self.role_permissions | self.custom_permissions)

    @classmethod
    def empty(cls) -> "EffectivePermissions":
        return cls()

    @classmethod
    def full_catalog(cls) -> "EffectivePermissions":
        return cls(role_permissions=ALL_PERMISSIONS, bypass=True)

    @property
    def has_membership(self) -> bool:
        return self.membership_id is not None

    def has(self, permission: Permission) -> bool:
        return permission in self.all

    def to_dict(self) -> dict:
        return {
            "role_id": self.role_id,
            "role_name": self.role_name,
            "role_permissions": sorted(p.value for p in self.role_permissions),
            "custom_permissions": sorted(p.value for p in self.custom_permissions),
            "all": sorted(p.value for p in self.all),
            "bypass": self.bypass,
        }


class PermissionResolver:
    def __init__(self, store: AccessStore):
        self.store = store

    async def resolve(
        self,
        user_id: str,
        tenant_id: str,
        global_role: GlobalRole | None = None,
    ) -> EffectivePermissions:
        """
        Resolve the effective permissions of ``user_id`` inside ``tenant_id``.

        The top global role gets the full catalog without touching storage.
        Any storage failure raises AccessServiceError; it never degrades to
        a partial or default set.
        """
        if global_role is not None and global_role.is_highest:
            logger.info(
                f"Permission bypass: user {user_id} ({global_role.value}) "
                f"granted full catalog in tenant {tenant_id}"
            )
            return EffectivePermissions.full_catalog()

        try:
            grants = await self.store.get_membership_grants(user_id, tenant_id)
        except Exception as exc:
            logger.exception(
                f"Permission lookup failed for user {user_id} in tenant {tenant_id}"
            )
            raise AccessServiceError(reason=f"membership lookup failed: {exc}") from exc

        if not grants:
            logger.warning(f"No active membership for user {user_id} in tenant {tenant_id}")
            return EffectivePermissions.empty()

        role_id = grants.get("role_id")
        source = f"role {role_id} (tenant {tenant_id})"
        role_permissions = (
            load_stored_permissions(grants.get("role_permissions"), source)
            if grants.get("role_active", True)
            else frozenset()
        )
        custom_permissions = load_stored_permissions(
            grants.get("custom_permissions"),
            f"membership {grants.get('membership_id')} (tenant {tenant_id})",
        )

        return EffectivePermissions(
            role_permissions=role_permissions,
            custom_permissions=custom_permissions,
            role_id=role_id,
            role_name=grants.get("role_name"),
            membership_id=grants.get("membership_id"),
        )
