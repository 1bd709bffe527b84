"""Authentication schemas for identity provider tokens."""

from typing import Optional

from pydantic import BaseModel, Field


class JWTClaims(BaseModel):
    """Claims carried by the identity provider's access token."""

    sub: str = Field(..., description="Subject (user ID)")
    email: Optional[str] = Field(None, description="User email")
    role: str = Field(default="technician", description="User role: admin or technician")
    approved: bool = Field(default=False, description="Whether an administrator approved the account")
    name: Optional[str] = Field(None, description="Display name")
    exp: Optional[int] = Field(None, description="Expiration timestamp")


class CurrentUser(BaseModel):
    """Session value passed explicitly into every lifecycle operation."""

    id: str = Field(..., description="Identity provider user ID")
    email: Optional[str] = Field(None, description="User email")
    role: str = Field(default="technician", description="User role")
    approved: bool = Field(default=False, description="Approval flag")
    full_name: Optional[str] = Field(None, description="User's full name")

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or self.id
