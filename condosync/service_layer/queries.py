# condosync/service_layer/queries.py
from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.types import UNMATCHED_PARTITION
from ..schemas import ListingRecord, SyncStatusOut
from .unit_of_work import SqlAlchemyUnitOfWork
from .use_cases.sync import next_mode

log = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


async def get_partition(key: str, *, session_factory: SessionFactory | None = None) -> list[ListingRecord]:
    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        return await uow.listings.read_partition(key)


async def get_all_listings(*, session_factory: SessionFactory | None = None) -> list[ListingRecord]:
    """Every listing once, deduplicated across partitions."""
    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        return await uow.listings.read_all()


async def get_sync_status(*, session_factory: SessionFactory | None = None) -> SyncStatusOut:
    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        state = await uow.sync_state.read()
        partitions = await uow.listings.partition_counts()
    return SyncStatusOut(
        sync_state=state,
        next_sync_mode=next_mode(state).value,
        partitions=partitions,
        total_listings=sum(partitions.values()),
    )


async def get_unmatched_addresses(*, session_factory: SessionFactory | None = None) -> list[str]:
    """Distinct addresses waiting for manual remediation, in stored order."""
    records = await get_partition(UNMATCHED_PARTITION, session_factory=session_factory)
    seen: dict[str, None] = {}
    for rec in records:
        if rec.address:
            seen.setdefault(rec.address, None)
    return list(seen)


async def reset_sync_state(*, session_factory: SessionFactory | None = None) -> bool:
    """Forget the watermark; the next cycle runs as an initial replication."""
    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        existed = await uow.sync_state.reset()
    log.info("sync state reset (existed=%s)", existed)
    return existed


async def clear_cache(*, session_factory: SessionFactory | None = None) -> int:
    """Drop every cached listing and snapshot. Sync state is left alone."""
    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        removed = await uow.listings.clear()
        await uow.snapshots.clear()
    log.warning("listing cache cleared (%d partition(s))", removed)
    return removed
