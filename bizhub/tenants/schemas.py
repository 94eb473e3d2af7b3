from datetime import datetime
from typing import Optional
import re

from pydantic import BaseModel, EmailStr, Field, field_validator

from bizhub.tenant import TenantPlan, TenantStatus, validate_subdomain


class TenantSetupRequest(BaseModel):
    """Request body for POST /set-up"""
    name: str = Field(..., min_length=3, max_length=100)
    subdomain: str = Field(..., min_length=2, max_length=63)
    email: EmailStr
    phone: Optional[str] = Field(None, min_length=7, max_length=20)
    plan: TenantPlan = TenantPlan.FREE
    owner_email: EmailStr
    owner_name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)

    @field_validator("subdomain")
    @classmethod
    def check_subdomain(cls, v):
        return validate_subdomain(v)

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        if v:
            cleaned = re.sub(r"[\s\-\(\)]", "", v)
            if not cleaned.replace("+", "").isdigit():
                raise ValueError("Invalid phone number format")
            return cleaned
        return v


class TenantSetupResponse(BaseModel):
    tenant_id: str
    tenant_name: str
    subdomain: str
    plan: TenantPlan
    owner_user_id: str
    owner_email: str
    temporary_password: Optional[str] = None
    roles_seeded: list[str]
    setup_completed: bool
    created_at: datetime
    message: str


class TenantStatusUpdateRequest(BaseModel):
    status: TenantStatus
    reason: Optional[str] = Field(None, max_length=500)
