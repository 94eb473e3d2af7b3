from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """POST /auth/login"""
    identifier: str = Field(..., min_length=3)   # email
    password: str = Field(..., min_length=1)
    subdomain: str = Field(..., min_length=1)    # tenant to open the session in
