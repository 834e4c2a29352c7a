"""Authentication schemas for externally issued identity tokens."""

from typing import Optional

from pydantic import BaseModel, Field


class TokenClaims(BaseModel):
    """Decoded bearer token claims."""

    sub: str
    email: Optional[str] = None
    role: str = "authenticated"
    exp: int
    iat: Optional[int] = None
    iss: Optional[str] = None


class CurrentUser(BaseModel):
    """Authenticated caller resolved from a bearer token."""

    id: str = Field(..., description="Identity provider subject")
    email: Optional[str] = Field(None, description="User email address")
    role: str = Field(default="user", description="User role")

