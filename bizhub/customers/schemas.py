"""
Customer schemas: CRM contacts owned by one tenant.
"""

from pydantic import BaseModel, Field, EmailStr, field_validator
from typing import Optional, List
from enum import Enum
import re


class CustomerTypeEnum(str, Enum):
    INDIVIDUAL = "individual"
    BUSINESS = "business"
    WHOLESALE = "wholesale"
    RETAIL = "retail"
    OTHER = "other"


class AddressModel(BaseModel):
    line1: str = Field(..., min_length=3, max_length=200)
    line2: Optional[str] = Field(None, max_length=200)
    city: str = Field(..., min_length=2, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=12)
    country: Optional[str] = Field(None, max_length=100)


def _clean_phone(v: Optional[str]) -> Optional[str]:
    if v:
        cleaned = re.sub(r"[\s\-\(\)]", "", v)
        if not cleaned.replace("+", "").isdigit():
            raise ValueError("Invalid phone number")
        return cleaned
    return v


class CreateCustomerRequest(BaseModel):
    """POST /customers"""

    name: str = Field(..., min_length=2, max_length=200)
    phone: str = Field(..., min_length=7, max_length=20)
    email: Optional[EmailStr] = None
    company_name: Optional[str] = Field(None, max_length=200)

    customer_type: CustomerTypeEnum = Field(default=CustomerTypeEnum.RETAIL)
    tags: List[str] = Field(default_factory=list)
    address: Optional[AddressModel] = None

    notes: Optional[str] = Field(None, max_length=1000)
    is_active: bool = True

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _clean_phone(v)


class UpdateCustomerRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    company_name: Optional[str] = None
    customer_type: Optional[CustomerTypeEnum] = None
    tags: Optional[List[str]] = None
    address: Optional[AddressModel] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _clean_phone(v)
