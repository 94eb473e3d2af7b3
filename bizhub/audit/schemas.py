"""
Audit Log schemas: tracks role, membership, tenant and customer changes.
"""

from enum import Enum


class AuditActionEnum(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    DEACTIVATE = "deactivate"
    STATUS_CHANGE = "status_change"
    PROVISION = "provision"
    OTHER = "other"


class AuditModuleEnum(str, Enum):
    ROLES = "roles"
    MEMBERSHIPS = "memberships"
    TENANTS = "tenants"
    CUSTOMERS = "customers"
    OTHER = "other"
