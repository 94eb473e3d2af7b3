"""
Role schemas: tenant roles bundling permission keys from the catalog.
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class RoleSortEnum(str, Enum):
    NAME = "name"
    LEVEL = "level"
    IS_ACTIVE = "is_active"
    IS_SYSTEM_ROLE = "is_system_role"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class SortOrderEnum(str, Enum):
    ASC = "asc"
    DESC = "desc"


class CreateRoleRequest(BaseModel):
    """POST /roles"""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    level: int = Field(..., ge=1, description="Display ordering only")
    is_system_role: bool = False
    is_active: bool = True
    # Validated against the catalog by the service so the error can list bad keys
    permissions: List[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Role name cannot be blank")
        return v


class UpdateRoleRequest(BaseModel):
    """PUT /roles/{role_id}: all fields optional"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    level: Optional[int] = Field(None, ge=1)
    is_system_role: Optional[bool] = None
    is_active: Optional[bool] = None
    permissions: Optional[List[str]] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        if v is not None:
            v = v.strip()
            if not v:
                raise ValueError("Role name cannot be blank")
        return v
