"""Tests for the session store."""

from datetime import timedelta

import pytest
from sqlalchemy import select, update

from bookworm_auth.core.timeutils import utcnow
from bookworm_auth.db.session import transaction
from bookworm_auth.models.session import Session
from bookworm_auth.services.sessions import ClientInfo, classify_device

from conftest import register_user, register_verified

DAY = timedelta(days=1)


async def _open(services, db, user_id, ttl=DAY, **client):
    async with transaction(db):
        return await services.sessions.create(db, user_id, ClientInfo(**client), ttl)


@pytest.mark.parametrize(
    "user_agent,expected",
    [
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Mobile/15E148", "Mobile"),
        ("Mozilla/5.0 (Linux; Android 13; Tablet) AppleWebKit", "Tablet"),
        ("Googlebot/2.1 (+http://www.google.com/bot.html)", "Bot"),
        ("Mozilla/5.0 (X11; Linux x86_64) Firefox/120.0", "Desktop"),
        (None, "Desktop"),
    ],
)
def test_classify_device(user_agent, expected):
    assert classify_device(user_agent) == expected


@pytest.mark.asyncio
async def test_create_issues_distinct_tokens_with_metadata(services, db):
    user = await register_verified(services, db)

    first = await _open(services, db, user.id, ip_address="203.0.113.9", user_agent="curl/8", device="Desktop")
    second = await _open(services, db, user.id)

    assert first.token != second.token
    assert len(first.token) == 64
    assert first.csrf_secret and first.csrf_secret != first.token
    assert first.ip_address == "203.0.113.9"
    assert first.device == "Desktop"
    assert first.expires_at > utcnow() + timedelta(hours=23)


@pytest.mark.asyncio
async def test_validate_returns_owner_and_session(services, db):
    user = await register_verified(services, db)
    record = await _open(services, db, user.id)

    resolved = await services.sessions.validate(db, record.token)

    assert resolved is not None
    owner, session = resolved
    assert owner.id == user.id
    assert session.id == record.id


@pytest.mark.asyncio
async def test_validate_unknown_or_empty_token(services, db):
    assert await services.sessions.validate(db, "") is None
    assert await services.sessions.validate(db, "0" * 64) is None


@pytest.mark.asyncio
async def test_validate_deletes_expired_session(services, db):
    user = await register_verified(services, db)
    record = await _open(services, db, user.id, ttl=timedelta(seconds=-1))

    async with transaction(db):
        assert await services.sessions.validate(db, record.token) is None

    assert await services.sessions.count(db, user.id) == 0


@pytest.mark.asyncio
async def test_validate_rejects_unverified_owner(services, db):
    user = await register_user(services, db)
    record = await _open(services, db, user.id)

    assert await services.sessions.validate(db, record.token) is None
    # the row itself is kept; only expiry removes it
    assert await services.sessions.count(db, user.id) == 1


@pytest.mark.asyncio
async def test_revoke_one_is_scoped_to_owner(services, db):
    alice = await register_verified(services, db)
    bob = await register_verified(services, db, username="bob", email="bob@example.com")
    record = await _open(services, db, alice.id)

    async with transaction(db):
        assert await services.sessions.revoke_one(db, record.id, bob.id) is False
    assert await services.sessions.count(db, alice.id) == 1

    async with transaction(db):
        assert await services.sessions.revoke_one(db, record.id, alice.id) is True
    assert await services.sessions.count(db, alice.id) == 0


@pytest.mark.asyncio
async def test_revoke_all_keeps_excepted_session(services, db):
    user = await register_verified(services, db)
    keep = await _open(services, db, user.id)
    await _open(services, db, user.id)
    await _open(services, db, user.id)

    async with transaction(db):
        revoked = await services.sessions.revoke_all(db, user.id, except_session_id=keep.id)

    assert revoked == 2
    remaining = (await db.execute(select(Session.id).where(Session.user_id == user.id))).scalars().all()
    assert remaining == [keep.id]

    async with transaction(db):
        assert await services.sessions.revoke_all(db, user.id) == 1


@pytest.mark.asyncio
async def test_list_active_orders_newest_first_and_flags_current(services, db):
    user = await register_verified(services, db)
    older = await _open(services, db, user.id)
    newer = await _open(services, db, user.id)
    expired = await _open(services, db, user.id, ttl=timedelta(seconds=-1))
    async with transaction(db):
        await db.execute(
            update(Session).where(Session.id == older.id).values(created_at=utcnow() - timedelta(hours=2))
        )

    active = await services.sessions.list_active(db, user.id, current_session_id=older.id)

    assert [item.session.id for item in active] == [newer.id, older.id]
    assert [item.is_current for item in active] == [False, True]
    assert expired.id not in {item.session.id for item in active}


@pytest.mark.asyncio
async def test_purge_expired_sessions(services, db):
    user = await register_verified(services, db)
    await _open(services, db, user.id)
    await _open(services, db, user.id, ttl=timedelta(seconds=-1))
    await _open(services, db, user.id, ttl=timedelta(seconds=-5))

    async with transaction(db):
        assert await services.sessions.purge_expired(db) == 2
    assert await services.sessions.count(db, user.id) == 1
