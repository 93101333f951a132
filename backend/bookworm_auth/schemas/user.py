"""Pydantic schemas for user operations."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookworm_auth.models.user import Role

USERNAME_PATTERN = r"^[a-z0-9_]+$"
DISPLAY_NAME_PATTERN = r"^[a-zA-Z0-9_ ]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_PASSWORD_RULES = (re.compile(r"[a-z]"), re.compile(r"[A-Z]"), re.compile(r"\d"))


def normalize_identifier(value: str) -> str:
    """Lower-case and trim a username or email."""
    return value.strip().lower()


def check_password_strength(value: str) -> str:
    if not all(rule.search(value) for rule in _PASSWORD_RULES):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, and one number"
        )
    return value


def check_display_name(value: str | None) -> str | None:
    if value is None:
        return value
    value = value.strip()
    if len(value) < 3:
        raise ValueError("Display name must have at least 3 non-blank characters")
    return value


class UserRead(BaseModel):
    """Sanitized user payload; never carries the password hash."""

    id: str
    username: str
    email: str
    display_name: str | None = None
    full_name: str | None = None
    bio: str | None = None
    location: str | None = None
    roles: list[str]
    email_verified: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=48, pattern=USERNAME_PATTERN)
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str | None = Field(default=None, min_length=1, max_length=100)
    display_name: str | None = Field(default=None, min_length=3, max_length=48, pattern=DISPLAY_NAME_PATTERN)

    @field_validator("username", "email", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> object:
        return normalize_identifier(value) if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def _strong_password(cls, value: str) -> str:
        return check_password_strength(value)

    @field_validator("display_name")
    @classmethod
    def _display_name(cls, value: str | None) -> str | None:
        return check_display_name(value)


class ProfileUpdate(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=48, pattern=USERNAME_PATTERN)
    display_name: str | None = Field(default=None, min_length=3, max_length=48, pattern=DISPLAY_NAME_PATTERN)
    full_name: str | None = Field(default=None, max_length=100)
    bio: str | None = Field(default=None, max_length=500)
    location: str | None = Field(default=None, max_length=100)

    @field_validator("username", mode="before")
    @classmethod
    def _normalize(cls, value: object) -> object:
        return normalize_identifier(value) if isinstance(value, str) else value

    @field_validator("display_name")
    @classmethod
    def _display_name(cls, value: str | None) -> str | None:
        return check_display_name(value)


class OnboardingUpdate(ProfileUpdate):
    username: str = Field(..., min_length=3, max_length=48, pattern=USERNAME_PATTERN)


class AccountDelete(BaseModel):
    password: str
    confirmation: Literal["DELETE MY ACCOUNT"]


class RoleUpdate(BaseModel):
    action: Literal["add", "remove"]
    role: Role


class UserEnvelope(BaseModel):
    success: bool = True
    user: UserRead
    message: str | None = None


class UserProfile(BaseModel):
    """Profile as shown to other users; private fields are only set for the owner and admins."""

    id: str
    username: str
    display_name: str | None = None
    full_name: str | None = None
    bio: str | None = None
    location: str | None = None
    created_at: datetime
    email: str | None = None
    roles: list[str] | None = None
    email_verified: bool | None = None


class ProfileEnvelope(BaseModel):
    success: bool = True
    user: UserProfile


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class UserList(BaseModel):
    success: bool = True
    users: list[UserRead]
    pagination: Pagination
