"""Authentication schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AuthStartResponse(BaseModel):
    authorization_url: str


class IdentityResponse(BaseModel):
    """Public identity data (no tokens)."""

    id: int
    platform_user_id: str
    username: str
    display_name: str
    avatar_url: Optional[str] = None
    verified: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class CallbackResponse(BaseModel):
    success: bool = True
    is_new: bool
    identity: IdentityResponse


class MeResponse(BaseModel):
    logged_in: bool
    identity: Optional[IdentityResponse] = None


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out"
