"""Authentication-related schemas."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .user import EMAIL_PATTERN, UserRead, check_password_strength, normalize_identifier


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> object:
        return normalize_identifier(value) if isinstance(value, str) else value


class LocationRead(BaseModel):
    ip: str
    city: str | None = None
    region: str | None = None
    country: str | None = None
    country_code: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None
    accuracy: int | None = None
    formatted: str

    model_config = ConfigDict(from_attributes=True)


class SessionRead(BaseModel):
    """Client-visible session metadata; the bearer token is never echoed."""

    id: str
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    device: str | None = None
    location: str | None = None
    created_at: datetime
    is_current: bool = False

    model_config = ConfigDict(from_attributes=True)


class LoginSession(BaseModel):
    token: str
    expires_at: datetime
    csrf_token: str | None = None


class LoginResponse(BaseModel):
    success: bool = True
    user: UserRead
    session: LoginSession
    location: LocationRead | None = None


class MeResponse(BaseModel):
    success: bool = True
    user: UserRead
    needs_onboarding: bool


class SessionList(BaseModel):
    success: bool = True
    sessions: list[SessionRead]


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=16, max_length=128)


class ForgotPasswordRequest(BaseModel):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)

    @field_validator("email", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> object:
        return normalize_identifier(value) if isinstance(value, str) else value


class ResetPasswordRequest(TokenRequest):
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        return check_password_strength(value)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)
    logout_other_devices: bool = False

    @field_validator("new_password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        return check_password_strength(value)


class MessageResponse(BaseModel):
    success: bool = True
    message: str
