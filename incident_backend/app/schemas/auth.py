"""
Account and authentication Pydantic schemas.

Defines the stored account shape and the request/response schemas for authentication.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from incident_backend.app.models.enums import UserRole
from incident_backend.app.schemas.common import CamelModel


class UserAccount(CamelModel):
    """
    Stored account, including the password hash.

    Never returned from the API; use UserResponse for that.
    """
    id: str
    username: str
    password_hash: str
    role: UserRole = UserRole.PENDING
    is_owner: bool = False
    created_at: datetime
    last_activity: Optional[datetime] = None


class UserRegister(BaseModel):
    """
    Schema for user registration.

    New accounts always start in the pending role until an admin approves them.
    """
    username: str = Field(..., min_length=3, max_length=100, description="Unique, case-sensitive username")
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")


class UserLogin(BaseModel):
    """Schema for user login."""
    username: str = Field(..., description="Username")
    password: str = Field(..., description="Password")


class TokenResponse(BaseModel):
    """
    Schema for JWT token response.

    Returned by successful login.
    """
    access_token: str = Field(..., description="JWT access token")
    token_type: str = Field(default="bearer", description="Token type")
    user_id: str = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    role: UserRole = Field(..., description="User role")
    is_owner: bool = Field(default=False, description="Application owner flag")


class UserResponse(CamelModel):
    """Public account information."""
    id: str
    username: str
    role: UserRole
    is_owner: bool = False
    created_at: datetime
    last_activity: Optional[datetime] = None
