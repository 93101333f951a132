import os
import re

os.environ.setdefault("BOOKWORM_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("BOOKWORM_DATABASE_URL", "sqlite+aiosqlite:///./bookworm-test.db")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import select  # noqa: E402

from bookworm_auth.core.config import Settings  # noqa: E402
from bookworm_auth.db.session import Database  # noqa: E402
from bookworm_auth.models.token import VerificationToken, VerificationType  # noqa: E402
from bookworm_auth.models.user import User  # noqa: E402
from bookworm_auth.schemas.user import UserCreate  # noqa: E402
from bookworm_auth.services.container import build_services  # noqa: E402
from bookworm_auth.services.notifications import NotificationMessage  # noqa: E402

PASSWORD = "Passw0rd"
TOKEN_IN_LINK = re.compile(r"token=([0-9a-f]+)")


class RecordingEmailProvider:
    """Collects outgoing messages instead of sending them."""

    def __init__(self) -> None:
        self.messages: list[NotificationMessage] = []

    async def send(self, message: NotificationMessage) -> None:
        self.messages.append(message)

    def tagged(self, tag: str) -> list[NotificationMessage]:
        return [m for m in self.messages if m.tag == tag]

    def last_token(self, tag: str) -> str:
        match = TOKEN_IN_LINK.search(self.tagged(tag)[-1].text)
        assert match, "no token link in message"
        return match.group(1)


class FailingEmailProvider:
    async def send(self, message: NotificationMessage) -> None:
        raise RuntimeError("mail provider down")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        secret_key="test-secret-key-for-testing-only",
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'bookworm.db'}",
        password_hash_rounds=1,
        password_hash_memory_kib=1024,
        session_cookie_secure=False,
        resend_api_key=None,
        maxmind_account_id=None,
        maxmind_license_key=None,
        frontend_url="http://frontend.test",
    )


@pytest.fixture
def mailbox():
    return RecordingEmailProvider()


@pytest.fixture
def services(settings, mailbox):
    return build_services(settings, email_provider=mailbox)


@pytest_asyncio.fixture
async def database(settings):
    database = Database(settings.database_url)
    await database.create_all()
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def db(database):
    async with database.session() as session:
        yield session


async def unused_token(db, user_id: str, token_type: VerificationType) -> VerificationToken:
    result = await db.execute(
        select(VerificationToken).where(
            VerificationToken.user_id == user_id,
            VerificationToken.type == token_type.value,
            VerificationToken.used_at.is_(None),
        )
    )
    return result.scalar_one()


async def register_user(services, db, username="alice", email="alice@example.com", password=PASSWORD, **extra):
    return await services.accounts.register(
        db, UserCreate(username=username, email=email, password=password, **extra)
    )


async def register_verified(services, db, username="alice", email="alice@example.com", password=PASSWORD):
    user = await register_user(services, db, username=username, email=email, password=password)
    token = await unused_token(db, user.id, VerificationType.EMAIL_VERIFICATION)
    return await services.accounts.verify_email(db, token.token)


async def load_user(db, user_id: str) -> User:
    return await db.get(User, user_id, populate_existing=True)