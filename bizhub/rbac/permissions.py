"""
Permission catalog.

Permission format:  "{group}.{action}"   e.g. "customers.edit"

The catalog is closed: every key a role or membership may hold is a member
of ``Permission``. Unknown keys are rejected when a permission set is
built, so a typo in a route declaration fails at import time instead of
silently never matching.
"""

from enum import Enum
from typing import Iterable

from bizhub.utils import Logger

logger = Logger("rbac")


class Permission(str, Enum):
    # ── Customer management ──────────────────────────────────
    CUSTOMERS_VIEW = "customers.view"
    CUSTOMERS_CREATE = "customers.create"
    CUSTOMERS_EDIT = "customers.edit"
    CUSTOMERS_DELETE = "customers.delete"
    CUSTOMERS_COMMUNICATE = "customers.communicate"

    # ── Sales & transactions ─────────────────────────────────
    SALES_VIEW = "sales.view"
    SALES_CREATE = "sales.create"
    SALES_EDIT = "sales.edit"
    SALES_VOID = "sales.void"
    SALES_REFUND = "sales.refund"
    SALES_REPORTS = "sales.reports"

    # ── Inventory ────────────────────────────────────────────
    INVENTORY_VIEW = "inventory.view"
    INVENTORY_CREATE = "inventory.create"
    INVENTORY_EDIT = "inventory.edit"
    INVENTORY_DELETE = "inventory.delete"
    INVENTORY_ADJUST = "inventory.adjust"
    INVENTORY_REPORTS = "inventory.reports"

    # ── Staff management ─────────────────────────────────────
    STAFF_VIEW = "staff.view"
    STAFF_CREATE = "staff.create"
    STAFF_EDIT = "staff.edit"
    STAFF_DELETE = "staff.delete"
    STAFF_ROLES = "staff.roles"

    # ── Employees (HRM) ──────────────────────────────────────
    EMPLOYEES_VIEW = "employees.view"
    EMPLOYEES_CREATE = "employees.create"
    EMPLOYEES_EDIT = "employees.edit"
    EMPLOYEES_DELETE = "employees.delete"
    EMPLOYEES_ATTENDANCE = "employees.attendance"
    EMPLOYEES_PAYROLL = "employees.payroll"

    # ── System administration ────────────────────────────────
    SYSTEM_SETTINGS = "system.settings"
    SYSTEM_BACKUP = "system.backup"
    SYSTEM_USERS = "system.users"
    SYSTEM_AUDIT = "system.audit"
    SYSTEM_INTEGRATIONS = "system.integrations"

    # ── Reports & analytics ──────────────────────────────────
    REPORTS_VIEW = "reports.view"
    REPORTS_EXPORT = "reports.export"
    REPORTS_FINANCIAL = "reports.financial"
    REPORTS_CUSTOM = "reports.custom"

    # ── Partners ─────────────────────────────────────────────
    PARTNERS_VIEW = "partners.view"
    PARTNERS_CREATE = "partners.create"
    PARTNERS_EDIT = "partners.edit"
    PARTNERS_DELETE = "partners.delete"
    PARTNERS_COMMISSIONS = "partners.commissions"

    @property
    def group(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def description(self) -> str:
        return PERMISSION_DESCRIPTIONS[self]


PERMISSION_DESCRIPTIONS: dict[Permission, str] = {
    Permission.CUSTOMERS_VIEW: "View customer information",
    Permission.CUSTOMERS_CREATE: "Create new customers",
    Permission.CUSTOMERS_EDIT: "Edit customer information",
    Permission.CUSTOMERS_DELETE: "Delete customers",
    Permission.CUSTOMERS_COMMUNICATE: "Send emails/SMS to customers",
    Permission.SALES_VIEW: "View sales transactions",
    Permission.SALES_CREATE: "Process sales transactions",
    Permission.SALES_EDIT: "Edit sales transactions",
    Permission.SALES_VOID: "Void sales transactions",
    Permission.SALES_REFUND: "Process refunds",
    Permission.SALES_REPORTS: "View sales reports",
    Permission.INVENTORY_VIEW: "View inventory",
    Permission.INVENTORY_CREATE: "Add new products",
    Permission.INVENTORY_EDIT: "Edit product information",
    Permission.INVENTORY_DELETE: "Delete products",
    Permission.INVENTORY_ADJUST: "Adjust inventory levels",
    Permission.INVENTORY_REPORTS: "View inventory reports",
    Permission.STAFF_VIEW: "View staff information",
    Permission.STAFF_CREATE: "Create new staff accounts",
    Permission.STAFF_EDIT: "Edit staff information",
    Permission.STAFF_DELETE: "Delete staff accounts",
    Permission.STAFF_ROLES: "Manage roles and permissions",
    Permission.EMPLOYEES_VIEW: "View employee information",
    Permission.EMPLOYEES_CREATE: "Create new employees",
    Permission.EMPLOYEES_EDIT: "Edit employee information",
    Permission.EMPLOYEES_DELETE: "Delete employees",
    Permission.EMPLOYEES_ATTENDANCE: "Manage attendance records",
    Permission.EMPLOYEES_PAYROLL: "View payroll information",
    Permission.SYSTEM_SETTINGS: "Manage system settings",
    Permission.SYSTEM_BACKUP: "Create system backups",
    Permission.SYSTEM_USERS: "Manage user accounts",
    Permission.SYSTEM_AUDIT: "View audit logs",
    Permission.SYSTEM_INTEGRATIONS: "Manage integrations",
    Permission.REPORTS_VIEW: "View all reports",
    Permission.REPORTS_EXPORT: "Export reports",
    Permission.REPORTS_FINANCIAL: "View financial reports",
    Permission.REPORTS_CUSTOM: "Create custom reports",
    Permission.PARTNERS_VIEW: "View partner information",
    Permission.PARTNERS_CREATE: "Create new partners",
    Permission.PARTNERS_EDIT: "Edit partner information",
    Permission.PARTNERS_DELETE: "Delete partners",
    Permission.PARTNERS_COMMISSIONS: "Manage partner commissions",
}

ALL_PERMISSIONS: frozenset[Permission] = frozenset(Permission)


class UnknownPermissionError(ValueError):
    """Raised when a permission key is not part of the catalog."""

    def __init__(self, keys: Iterable[str]):
        self.keys = sorted(keys)
        super().__init__(f"Unknown permission key(s): {', '.join(self.keys)}")


def parse_permission(key: "str | Permission") -> Permission:
    if isinstance(key, Permission):
        return key
    try:
        return Permission(key)
    except ValueError:
        raise UnknownPermissionError([str(key)]) from None


def parse_permissions(keys: Iterable["str | Permission"]) -> frozenset[Permission]:
    """Build a permission set, rejecting any key outside the catalog."""
    parsed: set[Permission] = set()
    unknown: list[str] = []
    for key in keys:
        try:
            parsed.add(parse_permission(key))
        except UnknownPermissionError:
            unknown.append(str(key))
    if unknown:
        raise UnknownPermissionError(unknown)
    return frozenset(parsed)


def load_stored_permissions(keys: Iterable[str] | None, source: str) -> frozenset[Permission]:
    """
    Build a permission set from stored data.

    Stored keys outside the catalog grant nothing; they are dropped with a
    warning rather than failing the request.
    """
    parsed: set[Permission] = set()
    for key in keys or []:
        try:
            parsed.add(Permission(key))
        except ValueError:
            logger.warning(f"Ignoring unknown permission '{key}' stored on {source}")
    return frozenset(parsed)


def catalog() -> list[dict]:
    """The full catalog as plain dicts, for UI and documentation."""
    return [
        {"key": p.value, "description": p.description, "group": p.group}
        for p in Permission
    ]
