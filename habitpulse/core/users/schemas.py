"""Request and response shapes for accounts."""

from __future__ import annotations

from typing import List, Optional, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

if TYPE_CHECKING:
    from habitpulse.core.users.models import User


class UserCreateRequest(BaseModel):
    email: EmailStr
    # bcrypt ignores bytes past 72.
    password: str = Field(min_length=8, max_length=72)
    full_name: Optional[str] = Field(default=None, max_length=255)
    # IANA name; day boundaries for new habits default to it.
    timezone: Optional[str] = None
    organization_id: Optional[int] = None

    @field_validator("full_name", "timezone")
    @classmethod
    def _blank_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    # Stored emails are not re-validated on the way out.
    email: str
    display_name: str
    full_name: Optional[str] = None
    timezone: Optional[str] = None
    organization_id: Optional[int] = None
    is_active: bool
    role_codes: List[str] = []


def serialize_user(user: "User") -> UserResponse:
    return UserResponse.model_validate(user)
