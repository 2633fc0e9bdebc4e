# scripts/run_scheduler.py
from __future__ import annotations

import asyncio
import logging
import os

from condosync.config import settings
from condosync.db import engine
from condosync.jobs.scheduler import build_scheduler
from condosync.models import Base
from condosync.service_layer.use_cases.sync import run_sync_cycle

log = logging.getLogger("condosync.scheduler")


def _configure_logging() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s:%(name)s:%(message)s",
    )

    # per-request lines come from our own client; httpx's are noise
    for name in ("httpx", "apscheduler", "uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(logging.WARNING)


async def main() -> None:
    _configure_logging()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # don't wait a full interval for the first cycle
    if os.environ.get("SYNC_ON_START", "1") == "1":
        outcome = await run_sync_cycle()
        log.info("startup sync: %s", outcome.status)

    scheduler = build_scheduler()
    scheduler.start()
    log.info("Scheduler started (every %d min)", settings.SCHED_SYNC_INTERVAL_MINUTES)

    try:
        while True:
            await asyncio.sleep(3600)
    except (KeyboardInterrupt, asyncio.CancelledError):
        scheduler.shutdown()
        log.info("Scheduler stopped")


if __name__ == "__main__":
    asyncio.run(main())
