"""Per-request session resolution and role checks."""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from bookworm_auth.core.errors import AuthRequired, CsrfMismatch, InsufficientPermissions, InvalidSession
from bookworm_auth.core.security import CsrfSigner
from bookworm_auth.db.session import transaction
from bookworm_auth.models.session import Session
from bookworm_auth.models.user import Role
from bookworm_auth.schemas.user import UserRead
from bookworm_auth.services.sessions import SessionStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuthContext:
    user: UserRead
    session: Session
    token: str

    @property
    def user_id(self) -> str:
        return self.user.id

    @property
    def session_id(self) -> str:
        return self.session.id

    def has_role(self, role: Role | str) -> bool:
        return Role(role).value in self.user.roles


class AuthorizationGuard:
    def __init__(self, sessions: SessionStore, csrf_signer: CsrfSigner) -> None:
        self._sessions = sessions
        self._csrf = csrf_signer

    async def authenticate(self, db: AsyncSession, token: str | None) -> AuthContext:
        if not token:
            raise AuthRequired()
        context = await self._resolve(db, token)
        if context is None:
            raise InvalidSession()
        return context

    async def authenticate_optional(self, db: AsyncSession, token: str | None) -> AuthContext | None:
        """Same resolution as ``authenticate`` but anonymous instead of failing."""
        if not token:
            return None
        return await self._resolve(db, token)

    def authorize(self, context: AuthContext, *roles: Role) -> None:
        if roles and not any(context.has_role(role) for role in roles):
            logger.warning("User %s lacks any of roles %s", context.user_id, [r.value for r in roles])
            raise InsufficientPermissions()

    def csrf_token_for(self, session: Session) -> str | None:
        if not session.csrf_secret:
            return None
        return self._csrf.dumps(session.csrf_secret)

    def verify_csrf(self, context: AuthContext, presented: str | None) -> None:
        secret = context.session.csrf_secret
        if not secret or not presented:
            raise CsrfMismatch()
        try:
            value = self._csrf.loads(presented)
        except ValueError as exc:
            raise CsrfMismatch() from exc
        if not hmac.compare_digest(value, secret):
            raise CsrfMismatch()

    async def _resolve(self, db: AsyncSession, token: str) -> AuthContext | None:
        # Commit so a lazily deleted expired session stays deleted.
        async with transaction(db):
            resolved = await self._sessions.validate(db, token)
        if resolved is None:
            return None
        user, session = resolved
        return AuthContext(user=UserRead.model_validate(user), session=session, token=token)
