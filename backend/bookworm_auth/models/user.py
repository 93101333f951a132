"""Database model for application users."""
from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bookworm_auth.core.timeutils import utcnow
from bookworm_auth.db.base import Base

if TYPE_CHECKING:
    from .session import Session
    from .token import VerificationToken


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """Identity record with hashed password, role set, and verification flag."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    username: Mapped[str] = mapped_column(String(48), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(48), default=None)
    full_name: Mapped[str | None] = mapped_column(String(100), default=None)
    bio: Mapped[str | None] = mapped_column(String(500), default=None)
    location: Mapped[str | None] = mapped_column(String(100), default=None)
    roles: Mapped[list[str]] = mapped_column(JSON, default=lambda: [Role.USER.value])
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    sessions: Mapped[list["Session"]] = relationship(
        "Session", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )
    verification_tokens: Mapped[list["VerificationToken"]] = relationship(
        "VerificationToken", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    def has_role(self, role: Role | str) -> bool:
        return Role(role).value in (self.roles or [])
