"""Persistence and lifecycle of bearer-token sessions."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bookworm_auth.core.security import TokenGenerator
from bookworm_auth.core.timeutils import utcnow
from bookworm_auth.models.session import Session
from bookworm_auth.models.user import User

logger = logging.getLogger(__name__)

_MOBILE = re.compile(r"mobile", re.IGNORECASE)
_TABLET = re.compile(r"tablet", re.IGNORECASE)
_BOT = re.compile(r"bot", re.IGNORECASE)


def classify_device(user_agent: str | None) -> str:
    ua = user_agent or ""
    if _MOBILE.search(ua):
        return "Mobile"
    if _TABLET.search(ua):
        return "Tablet"
    if _BOT.search(ua):
        return "Bot"
    return "Desktop"


@dataclass(slots=True)
class ClientInfo:
    ip_address: str | None = None
    user_agent: str | None = None
    device: str | None = None
    location: str | None = None


@dataclass(slots=True)
class ActiveSession:
    session: Session
    is_current: bool


class SessionStore:
    def __init__(self, generator: TokenGenerator) -> None:
        self._generator = generator

    async def create(self, db: AsyncSession, user_id: str, client: ClientInfo, ttl: timedelta) -> Session:
        record = Session(
            user_id=user_id,
            token=self._generator.generate(TokenGenerator.SESSION_BYTES),
            csrf_secret=self._generator.generate(TokenGenerator.CSRF_BYTES),
            expires_at=utcnow() + ttl,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device=client.device,
            location=client.location,
        )
        db.add(record)
        await db.flush()
        return record

    async def validate(self, db: AsyncSession, token: str) -> tuple[User, Session] | None:
        """Resolve a bearer token; expired rows are deleted on sight."""

        if not token:
            return None
        result = await db.execute(
            select(Session).options(selectinload(Session.user)).where(Session.token == token)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        if record.is_expired():
            await db.execute(
                delete(Session).where(Session.id == record.id).execution_options(synchronize_session=False)
            )
            db.expunge(record)
            await db.flush()
            logger.debug("Deleted expired session %s", record.id)
            return None
        if not record.user.email_verified:
            return None
        return record.user, record

    async def revoke_one(self, db: AsyncSession, session_id: str, user_id: str) -> bool:
        result = await db.execute(
            delete(Session)
            .where(Session.id == session_id, Session.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        return bool(result.rowcount)

    async def revoke_token(self, db: AsyncSession, token: str) -> None:
        await db.execute(
            delete(Session).where(Session.token == token).execution_options(synchronize_session=False)
        )

    async def revoke_all(self, db: AsyncSession, user_id: str, except_session_id: str | None = None) -> int:
        stmt = delete(Session).where(Session.user_id == user_id)
        if except_session_id:
            stmt = stmt.where(Session.id != except_session_id)
        result = await db.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount or 0

    async def list_active(
        self, db: AsyncSession, user_id: str, current_session_id: str | None = None
    ) -> list[ActiveSession]:
        result = await db.execute(
            select(Session)
            .where(Session.user_id == user_id, Session.expires_at > utcnow())
            .order_by(Session.created_at.desc())
        )
        return [ActiveSession(session=s, is_current=s.id == current_session_id) for s in result.scalars().all()]

    async def count(self, db: AsyncSession, user_id: str) -> int:
        result = await db.execute(select(Session.id).where(Session.user_id == user_id))
        return len(result.all())

    async def purge_expired(self, db: AsyncSession) -> int:
        result = await db.execute(
            delete(Session).where(Session.expires_at < utcnow()).execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
