"""Background scheduler for credential housekeeping."""
from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from bookworm_auth.db.session import Database
from bookworm_auth.services.accounts import AccountManager, PurgeResult

logger = logging.getLogger(__name__)

PURGE_JOB_ID = "purge-expired-credentials"


def create_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler()


def start_scheduler(scheduler: AsyncIOScheduler) -> None:
    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")


def stop_scheduler(scheduler: AsyncIOScheduler) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)


def schedule_purge_job(
    scheduler: AsyncIOScheduler,
    database: Database,
    accounts: AccountManager,
    interval_minutes: int,
) -> None:
    trigger = IntervalTrigger(minutes=interval_minutes)
    scheduler.add_job(
        purge_expired_credentials,
        trigger=trigger,
        id=PURGE_JOB_ID,
        args=[database, accounts],
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    logger.info("Scheduled %s every %s minutes", PURGE_JOB_ID, interval_minutes)


async def purge_expired_credentials(database: Database, accounts: AccountManager) -> PurgeResult:
    """Advisory sweep; claims and validation re-check expiry on their own."""
    async with database.session() as session:
        return await accounts.purge_expired(session)
