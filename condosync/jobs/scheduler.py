# condosync/jobs/scheduler.py
from __future__ import annotations

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import settings
from ..service_layer.use_cases.sync import run_sync_cycle

log = logging.getLogger(__name__)


async def _run_sync(session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    outcome = await run_sync_cycle(session_factory)
    if outcome.status == "already_running":
        log.info("scheduled sync skipped: previous cycle still running")
    elif outcome.status == "error":
        log.warning("scheduled sync failed: %s", outcome.error)


def build_scheduler(session_factory: async_sessionmaker[AsyncSession] | None = None) -> AsyncIOScheduler:
    sched = AsyncIOScheduler()

    # the sync-state lock is the real guard; max_instances just avoids piling up
    sched.add_job(
        _run_sync,
        "interval",
        minutes=settings.SCHED_SYNC_INTERVAL_MINUTES,
        kwargs={"session_factory": session_factory},
        id="mls_sync",
        max_instances=1,
        coalesce=True,
    )
    return sched
