"""
Membership schemas: the binding of a user to a tenant with one role.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class MembershipStatusEnum(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REVOKED = "revoked"


class AddMemberRequest(BaseModel):
    """POST /memberships"""
    email: EmailStr
    role_id: str
    custom_permissions: List[str] = Field(default_factory=list)
    # Only used when no account exists for the email yet
    name: Optional[str] = Field(None, min_length=2, max_length=100)


class UpdateMembershipRequest(BaseModel):
    """PUT /memberships/{id}: role and custom permissions change together"""
    role_id: Optional[str] = None
    custom_permissions: Optional[List[str]] = None


class DeactivateMembershipRequest(BaseModel):
    status: MembershipStatusEnum = MembershipStatusEnum.REVOKED
    reason: Optional[str] = Field(None, max_length=500)
