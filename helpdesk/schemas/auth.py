from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class RegistrationRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: Optional[str] = None

    @field_validator("full_name")
    @classmethod
    def _strip_name(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.strip() or None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class ProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    full_name: Optional[str] = Field(default=None, max_length=200)
    avatar_url: Optional[str] = None


class ProfileResponse(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str = "user"
    avatar_url: Optional[str] = None


class SessionResponse(BaseModel):
    state: Literal["anonymous", "authenticating", "authenticated"]
    user_id: Optional[str] = None
    email: Optional[str] = None
    user_name: Optional[str] = None
    role: str = "user"
    is_admin: bool = False
    is_agent: bool = False
    profile: Optional[ProfileResponse] = None
    error: Optional[str] = None


class AuthActionResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    requires_confirmation: bool = False
    session: Optional[SessionResponse] = None
    details: dict[str, Any] = Field(default_factory=dict)


class ThemePreference(BaseModel):
    theme: Literal["light", "dark"]
