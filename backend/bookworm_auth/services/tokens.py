"""Single-use verification and password-reset tokens.

All methods work inside the caller's transaction and only flush; the caller
decides when to commit.
"""
from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from bookworm_auth.core.errors import TokenAlreadyUsed, TokenExpired, TokenNotFound, TokenTypeMismatch
from bookworm_auth.core.security import TokenGenerator
from bookworm_auth.core.timeutils import as_utc, utcnow
from bookworm_auth.models.token import VerificationToken, VerificationType
from bookworm_auth.models.user import User
from bookworm_auth.services.notifications import Notifier

logger = logging.getLogger(__name__)


class TokenStore:
    def __init__(self, generator: TokenGenerator, notifier: Notifier) -> None:
        self._generator = generator
        self._notifier = notifier

    async def issue(
        self,
        session: AsyncSession,
        user: User,
        token_type: VerificationType,
        ttl: timedelta,
    ) -> VerificationToken:
        """Replace any unused token of this type for ``user``.

        Nothing is sent here; call ``deliver`` once the transaction has committed.
        """

        await session.execute(
            delete(VerificationToken)
            .where(
                VerificationToken.user_id == user.id,
                VerificationToken.type == token_type.value,
                VerificationToken.used_at.is_(None),
            )
            .execution_options(synchronize_session=False)
        )
        record = VerificationToken(
            user_id=user.id,
            token=self._generator.generate(TokenGenerator.VERIFICATION_BYTES),
            type=token_type.value,
            expires_at=utcnow() + ttl,
        )
        session.add(record)
        await session.flush()
        logger.info("Issued %s token for user %s", token_type.value, user.id)
        return record

    def deliver(self, user: User, record: VerificationToken) -> None:
        """Email a committed token to its owner."""
        name = user.display_name or user.username
        if record.type == VerificationType.EMAIL_VERIFICATION.value:
            self._notifier.send_verification_email(user.email, name, record.token)
        else:
            self._notifier.send_password_reset_email(user.email, name, record.token)

    async def claim(self, session: AsyncSession, value: str, expected_type: VerificationType) -> str:
        """Atomically mark a token used and return its owner's id.

        The state check and the write are a single conditional UPDATE, so two
        concurrent claims of the same token cannot both succeed.
        """

        now = utcnow()
        result = await session.execute(
            update(VerificationToken)
            .where(
                VerificationToken.token == value,
                VerificationToken.used_at.is_(None),
                VerificationToken.type == expected_type.value,
                VerificationToken.expires_at > now,
            )
            .values(used_at=now)
            .returning(VerificationToken.user_id)
            .execution_options(synchronize_session=False)
        )
        user_id = result.scalar_one_or_none()
        if user_id is not None:
            return user_id

        existing = (
            await session.execute(select(VerificationToken).where(VerificationToken.token == value))
        ).scalar_one_or_none()
        if existing is None:
            raise TokenNotFound()
        if existing.used_at is not None:
            raise TokenAlreadyUsed()
        if as_utc(existing.expires_at) <= now:
            raise TokenExpired()
        if existing.type != expected_type.value:
            raise TokenTypeMismatch()
        # Claimed by a concurrent request between the UPDATE and the re-read.
        raise TokenAlreadyUsed()

    async def count_unused(self, session: AsyncSession, user_id: str, token_type: VerificationType) -> int:
        result = await session.execute(
            select(func.count())
            .select_from(VerificationToken)
            .where(
                VerificationToken.user_id == user_id,
                VerificationToken.type == token_type.value,
                VerificationToken.used_at.is_(None),
            )
        )
        return result.scalar_one()

    async def purge_expired(self, session: AsyncSession) -> int:
        result = await session.execute(
            delete(VerificationToken)
            .where(VerificationToken.expires_at < utcnow(), VerificationToken.used_at.is_(None))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0
