"""
Global principal roles, bypass policies and the system role templates.

Global roles are platform-level tags on a user, independent of any tenant.
They are ordered once, here; tenant authorization never compares role
ranks, it only asks whether a role is the top one or belongs to a bypass
policy.

Tenant roles (the ones memberships point at) live in the ``roles``
collection and carry their own permission sets.
"""

from dataclasses import dataclass
from enum import Enum

from .permissions import ALL_PERMISSIONS, Permission


class GlobalRole(str, Enum):
    USER = "user"
    PARTNER = "partner"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def rank(self) -> int:
        return _GLOBAL_ROLE_ORDER.index(self)

    def at_least(self, other: "GlobalRole") -> bool:
        return self.rank >= other.rank

    @classmethod
    def highest(cls) -> "GlobalRole":
        return _GLOBAL_ROLE_ORDER[-1]

    @property
    def is_highest(self) -> bool:
        return self is GlobalRole.highest()

    @classmethod
    def parse(cls, value: "str | GlobalRole | None") -> "GlobalRole":
        """Unknown or missing role tags collapse to the lowest role."""
        if isinstance(value, GlobalRole):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.USER


# Lowest to highest; the only place the hierarchy is defined.
_GLOBAL_ROLE_ORDER: tuple[GlobalRole, ...] = (
    GlobalRole.USER,
    GlobalRole.PARTNER,
    GlobalRole.ADMIN,
    GlobalRole.SUPER_ADMIN,
)


@dataclass(frozen=True)
class BypassPolicy:
    """
    Named set of global roles that skip permission resolution.

    Routes share policy objects by reference so the set of roles that can
    bypass checks is declared in one place.
    """

    name: str
    roles: frozenset[GlobalRole]

    def applies_to(self, role: GlobalRole | None) -> bool:
        return role is not None and role in self.roles


NO_BYPASS = BypassPolicy(name="none", roles=frozenset())
ADMIN_BYPASS = BypassPolicy(name="admin-bypass", roles=frozenset({GlobalRole.SUPER_ADMIN}))


@dataclass(frozen=True)
class RoleTemplate:
    name: str
    description: str
    level: int
    permissions: frozenset[Permission]


# Seeded into every new tenant as system roles (is_system_role = True).
SYSTEM_ROLE_TEMPLATES: tuple[RoleTemplate, ...] = (
    RoleTemplate(
        name="Owner",
        description="Full access to every module of the business",
        level=100,
        permissions=ALL_PERMISSIONS,
    ),
    RoleTemplate(
        name="Admin",
        description="Administrative access to manage business operations",
        level=80,
        permissions=frozenset(
            p for p in Permission
            if p.group in {"customers", "sales", "inventory", "staff", "employees", "reports"}
        ) | {Permission.SYSTEM_SETTINGS, Permission.SYSTEM_AUDIT},
    ),
    RoleTemplate(
        name="Manager",
        description="Management access to oversee staff and operations",
        level=60,
        permissions=frozenset({
            Permission.CUSTOMERS_VIEW,
            Permission.CUSTOMERS_CREATE,
            Permission.CUSTOMERS_EDIT,
            Permission.SALES_VIEW,
            Permission.SALES_CREATE,
            Permission.SALES_REFUND,
            Permission.SALES_REPORTS,
            Permission.INVENTORY_VIEW,
            Permission.INVENTORY_ADJUST,
            Permission.STAFF_VIEW,
            Permission.EMPLOYEES_VIEW,
            Permission.EMPLOYEES_ATTENDANCE,
            Permission.REPORTS_VIEW,
        }),
    ),
    RoleTemplate(
        name="Staff",
        description="Standard staff access for daily operations",
        level=40,
        permissions=frozenset({
            Permission.CUSTOMERS_VIEW,
            Permission.CUSTOMERS_CREATE,
            Permission.SALES_VIEW,
            Permission.SALES_CREATE,
            Permission.INVENTORY_VIEW,
        }),
    ),
    RoleTemplate(
        name="Employee",
        description="Basic employee access for time tracking",
        level=20,
        permissions=frozenset({Permission.EMPLOYEES_ATTENDANCE}),
    ),
)

OWNER_ROLE_NAME = "Owner"
