"""Account lifecycle: registration, login, verification, passwords, profile, roles.

Each public operation is one unit of work: everything it writes is committed
together, or rolled back together when any step raises.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import String, cast, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bookworm_auth.core.config import Settings
from bookworm_auth.core.errors import (
    ConflictError,
    EmailNotVerified,
    ErrorCode,
    InsufficientPermissions,
    InvalidCredentials,
    InvalidPassword,
    NotFound,
    RegistrationDisabled,
    ValidationError,
)
from bookworm_auth.core.security import PasswordHasher
from bookworm_auth.core.timeutils import utcnow
from bookworm_auth.db.session import transaction
from bookworm_auth.models.session import Session
from bookworm_auth.models.token import VerificationToken, VerificationType
from bookworm_auth.models.user import Role, User
from bookworm_auth.schemas.user import ProfileUpdate, UserCreate, UserRead, normalize_identifier
from bookworm_auth.services.geolocation import LocationEnricher, LocationInfo
from bookworm_auth.services.notifications import Notifier, redact_email
from bookworm_auth.services.sessions import ActiveSession, ClientInfo, SessionStore, classify_device
from bookworm_auth.services.tokens import TokenStore

logger = logging.getLogger(__name__)

UNKNOWN_SESSION_LOCATION = "Unknown"
MAX_PAGE_SIZE = 100


@dataclass(slots=True)
class LoginResult:
    user: UserRead
    session: Session
    location: LocationInfo | None = None


@dataclass(slots=True)
class PurgeResult:
    sessions_deleted: int
    tokens_deleted: int


@dataclass(slots=True)
class UserPage:
    users: list[UserRead]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit)


def sanitize_user(user: User) -> UserRead:
    return UserRead.model_validate(user)


def _email_conflict() -> ConflictError:
    return ConflictError("Email already in use", code=ErrorCode.EMAIL_EXISTS)


def _username_conflict() -> ConflictError:
    return ConflictError("Username already taken", code=ErrorCode.USERNAME_EXISTS)


class AccountManager:
    def __init__(
        self,
        settings: Settings,
        hasher: PasswordHasher,
        tokens: TokenStore,
        sessions: SessionStore,
        enricher: LocationEnricher,
        notifier: Notifier,
    ) -> None:
        self._settings = settings
        self._hasher = hasher
        self._tokens = tokens
        self._sessions = sessions
        self._enricher = enricher
        self._notifier = notifier

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(days=self._settings.session_expiry_days)

    @property
    def verification_ttl(self) -> timedelta:
        return timedelta(hours=self._settings.verification_expiry_hours)

    @property
    def reset_ttl(self) -> timedelta:
        return timedelta(hours=self._settings.password_reset_expiry_hours)

    # Registration and login

    async def register(self, db: AsyncSession, payload: UserCreate) -> UserRead:
        if not self._settings.registration_enabled:
            raise RegistrationDisabled()

        email = normalize_identifier(payload.email)
        username = normalize_identifier(payload.username)
        full_name = payload.full_name.strip() if payload.full_name else None
        display_name = (payload.display_name or "").strip() or (full_name.split()[0] if full_name else "") or username

        async with transaction(db):
            result = await db.execute(select(User).where(or_(User.email == email, User.username == username)))
            existing = result.scalars().all()
            if any(user.email == email for user in existing):
                raise _email_conflict()
            if existing:
                raise _username_conflict()

            user = User(
                username=username,
                email=email,
                password_hash=self._hasher.hash(payload.password),
                full_name=full_name,
                display_name=display_name,
                roles=[Role.USER.value],
                email_verified=False,
            )
            db.add(user)
            try:
                await db.flush()
            except IntegrityError as exc:
                # Lost a race with a concurrent registration.
                raise (_email_conflict() if "email" in str(exc.orig).lower() else _username_conflict()) from exc

            token = await self._tokens.issue(db, user, VerificationType.EMAIL_VERIFICATION, self.verification_ttl)

        self._tokens.deliver(user, token)
        logger.info("Registered user %s (%s)", user.id, redact_email(email))
        return sanitize_user(user)

    async def login(self, db: AsyncSession, email: str, password: str, client: ClientInfo) -> LoginResult:
        user = await self._find_by_email(db, email)
        if user is None:
            self._hasher.dummy_verify(password)
            raise InvalidCredentials()
        if not self._hasher.verify(password, user.password_hash):
            raise InvalidCredentials()
        if not user.email_verified:
            raise EmailNotVerified()

        location: LocationInfo | None = None
        if client.ip_address:
            location = await self._enricher.resolve(client.ip_address)

        metadata = ClientInfo(
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device=client.device or classify_device(client.user_agent),
            location=location.formatted if location else UNKNOWN_SESSION_LOCATION,
        )
        async with transaction(db):
            session = await self._sessions.create(db, user.id, metadata, self.session_ttl)
            user.updated_at = utcnow()

        logger.info("User %s signed in from %s", user.id, metadata.location)
        return LoginResult(user=sanitize_user(user), session=session, location=location)

    async def logout(self, db: AsyncSession, token: str) -> None:
        async with transaction(db):
            await self._sessions.revoke_token(db, token)

    async def logout_all(self, db: AsyncSession, user_id: str, except_session_id: str | None = None) -> int:
        async with transaction(db):
            return await self._sessions.revoke_all(db, user_id, except_session_id)

    async def list_sessions(
        self, db: AsyncSession, user_id: str, current_session_id: str | None = None
    ) -> list[ActiveSession]:
        return await self._sessions.list_active(db, user_id, current_session_id)

    async def revoke_session(self, db: AsyncSession, session_id: str, user_id: str) -> bool:
        async with transaction(db):
            return await self._sessions.revoke_one(db, session_id, user_id)

    # Email verification

    async def verify_email(self, db: AsyncSession, token: str) -> UserRead:
        async with transaction(db):
            user_id = await self._tokens.claim(db, token, VerificationType.EMAIL_VERIFICATION)
            user = await self._require_user(db, user_id)
            user.email_verified = True
            user.updated_at = utcnow()

        logger.info("Verified email for user %s", user.id)
        self._notifier.send_welcome_email(user.email, user.display_name or user.username)
        return sanitize_user(user)

    async def resend_verification(self, db: AsyncSession, user_id: str) -> None:
        async with transaction(db):
            user = await self._require_user(db, user_id)
            if user.email_verified:
                raise ValidationError("Email already verified", code=ErrorCode.EMAIL_ALREADY_VERIFIED)
            token = await self._tokens.issue(db, user, VerificationType.EMAIL_VERIFICATION, self.verification_ttl)
        self._tokens.deliver(user, token)

    # Passwords

    async def request_password_reset(self, db: AsyncSession, email: str) -> None:
        """Start a reset; unknown addresses succeed silently."""

        async with transaction(db):
            user = await self._find_by_email(db, email)
            if user is None:
                logger.info("Password reset requested for unknown address %s", redact_email(normalize_identifier(email)))
                return
            token = await self._tokens.issue(db, user, VerificationType.PASSWORD_RESET, self.reset_ttl)
        self._tokens.deliver(user, token)

    async def reset_password(self, db: AsyncSession, token: str, new_password: str) -> UserRead:
        new_hash = self._hasher.hash(new_password)
        async with transaction(db):
            user_id = await self._tokens.claim(db, token, VerificationType.PASSWORD_RESET)
            user = await self._require_user(db, user_id)
            user.password_hash = new_hash
            user.updated_at = utcnow()
            revoked = await self._sessions.revoke_all(db, user.id)

        logger.info("Password reset for user %s; revoked %d session(s)", user.id, revoked)
        return sanitize_user(user)

    async def change_password(
        self,
        db: AsyncSession,
        user_id: str,
        current_password: str,
        new_password: str,
        keep_current_session: bool = True,
        current_session_id: str | None = None,
    ) -> None:
        async with transaction(db):
            user = await self._require_user(db, user_id)
            if not self._hasher.verify(current_password, user.password_hash):
                raise InvalidPassword()
            user.password_hash = self._hasher.hash(new_password)
            user.updated_at = utcnow()
            keep = current_session_id if keep_current_session else None
            revoked = await self._sessions.revoke_all(db, user.id, except_session_id=keep)

        logger.info("Password changed for user %s; revoked %d session(s)", user_id, revoked)

    # Profile and account

    async def update_profile(self, db: AsyncSession, user_id: str, updates: ProfileUpdate) -> UserRead:
        changes = updates.model_dump(exclude_unset=True)
        cleaned = {key: value.strip() if isinstance(value, str) else value for key, value in changes.items()}

        async with transaction(db):
            user = await self._require_user(db, user_id)
            if cleaned.get("username") is not None:
                username = normalize_identifier(cleaned["username"])
                taken = await db.execute(select(User.id).where(User.username == username, User.id != user_id))
                if taken.first() is not None:
                    raise _username_conflict()
                cleaned["username"] = username
            # username and display_name can be changed but never cleared
            for key in ("username", "display_name"):
                if key in cleaned and cleaned[key] is None:
                    del cleaned[key]

            for key, value in cleaned.items():
                setattr(user, key, value)
            user.updated_at = utcnow()
            try:
                await db.flush()
            except IntegrityError as exc:
                raise _username_conflict() from exc

        return sanitize_user(user)

    async def delete_account(self, db: AsyncSession, user_id: str, password: str) -> None:
        async with transaction(db):
            user = await self._require_user(db, user_id)
            if not self._hasher.verify(password, user.password_hash):
                raise InvalidPassword("Invalid password")
            await self._delete_user(db, user)
        logger.info("Deleted account %s", user_id)

    async def remove_user(self, db: AsyncSession, user_id: str) -> None:
        """Administrative deletion; admins cannot be removed this way."""

        async with transaction(db):
            user = await self._require_user(db, user_id)
            if user.has_role(Role.ADMIN):
                raise InsufficientPermissions("Cannot delete admin users")
            await self._delete_user(db, user)
        logger.info("Administratively removed user %s", user_id)

    async def get_user(self, db: AsyncSession, user_id: str) -> UserRead:
        return sanitize_user(await self._require_user(db, user_id))

    async def get_user_by_username(self, db: AsyncSession, username: str) -> UserRead:
        result = await db.execute(select(User).where(User.username == normalize_identifier(username)))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFound()
        return sanitize_user(user)

    async def get_user_by_email(self, db: AsyncSession, email: str) -> UserRead:
        user = await self._find_by_email(db, email)
        if user is None:
            raise NotFound()
        return sanitize_user(user)

    async def list_users(
        self,
        db: AsyncSession,
        *,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        role: Role | None = None,
        verified: bool | None = None,
    ) -> UserPage:
        """Newest-first page of users matching every given filter.

        ``search`` is a case-insensitive substring match on username, email,
        or display name.
        """

        if page < 1 or not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}")

        filters = []
        term = (search or "").strip()
        if term:
            filters.append(
                or_(
                    User.username.icontains(term, autoescape=True),
                    User.email.icontains(term, autoescape=True),
                    User.display_name.icontains(term, autoescape=True),
                )
            )
        if role is not None:
            # roles is a JSON array of enum names; match the quoted element
            filters.append(cast(User.roles, String).contains(f'"{Role(role).value}"'))
        if verified is not None:
            filters.append(User.email_verified == verified)

        total = (await db.execute(select(func.count()).select_from(User).where(*filters))).scalar_one()
        result = await db.execute(
            select(User)
            .where(*filters)
            .order_by(User.created_at.desc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        users = [sanitize_user(user) for user in result.scalars().all()]
        return UserPage(users=users, page=page, limit=limit, total=total)

    @staticmethod
    def needs_onboarding(user: UserRead) -> bool:
        return not user.username or not user.display_name

    # Roles

    async def has_role(self, db: AsyncSession, user_id: str, role: Role) -> bool:
        user = await db.get(User, user_id)
        return user is not None and user.has_role(role)

    async def add_role(self, db: AsyncSession, user_id: str, role: Role) -> UserRead:
        async with transaction(db):
            user = await self._require_user(db, user_id)
            if not user.has_role(role):
                user.roles = [*user.roles, role.value]
                user.updated_at = utcnow()
        return sanitize_user(user)

    async def remove_role(self, db: AsyncSession, user_id: str, role: Role) -> UserRead:
        async with transaction(db):
            user = await self._require_user(db, user_id)
            if user.has_role(role):
                user.roles = [r for r in user.roles if r != role.value]
                user.updated_at = utcnow()
        return sanitize_user(user)

    # Housekeeping

    async def purge_expired(self, db: AsyncSession) -> PurgeResult:
        async with transaction(db):
            sessions_deleted = await self._sessions.purge_expired(db)
            tokens_deleted = await self._tokens.purge_expired(db)
        if sessions_deleted or tokens_deleted:
            logger.info("Purged %d expired session(s) and %d expired token(s)", sessions_deleted, tokens_deleted)
        return PurgeResult(sessions_deleted=sessions_deleted, tokens_deleted=tokens_deleted)

    async def _find_by_email(self, db: AsyncSession, email: str) -> User | None:
        result = await db.execute(select(User).where(User.email == normalize_identifier(email)))
        return result.scalar_one_or_none()

    async def _require_user(self, db: AsyncSession, user_id: str) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFound()
        return user

    async def _delete_user(self, db: AsyncSession, user: User) -> None:
        await db.execute(
            delete(Session).where(Session.user_id == user.id).execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(VerificationToken)
            .where(VerificationToken.user_id == user.id)
            .execution_options(synchronize_session=False)
        )
        await db.delete(user)
        await db.flush()
