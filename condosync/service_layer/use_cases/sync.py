# condosync/service_layer/use_cases/sync.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...adapters.ingestion.base import CycleResult, ReplicationProvider
from ...adapters.ingestion.mls_grid import MlsGridReplicationClient
from ...config import settings
from ...domain.buildings import configured_buildings
from ...domain.parsing import utcnow
from ...domain.types import Building, ReplicationMode
from ...schemas import ListingSnapshot, SyncState
from ..routing import counts_by_status, route_records, store_partitions
from ..unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)


class IncompleteImportError(RuntimeError):
    """An initial replication returned suspiciously few records."""


@dataclass
class SyncOutcome:
    status: str  # success | error | already_running
    mode: str | None = None
    fetched: int = 0
    matched: int = 0
    unmatched: int = 0
    added: int = 0
    updated: int = 0
    deduped: int = 0
    watermark: str | None = None
    error: str | None = None


def next_mode(state: SyncState | None) -> ReplicationMode:
    if state is None or not state.watermark:
        return ReplicationMode.initial
    return ReplicationMode.incremental


@dataclass
class SyncOrchestrator:
    """
    One replication cycle: lock, fetch, match, store, commit the watermark.

    Data writes and the success state share one transaction. Any failure
    rolls the data back and records the error against the old watermark.
    """

    session_factory: async_sessionmaker[AsyncSession] | None = None
    provider_factory: Callable[[], ReplicationProvider] = MlsGridReplicationClient.from_settings
    buildings: Sequence[Building] | None = None
    now: Callable[[], datetime] = utcnow
    min_initial_listings: int | None = None

    def _uow(self) -> SqlAlchemyUnitOfWork:
        return SqlAlchemyUnitOfWork(self.session_factory)

    async def run_cycle(self) -> SyncOutcome:
        async with self._uow() as uow:
            acq = await uow.sync_state.try_acquire(self.now())

        if not acq.acquired:
            started = acq.previous.last_run_at if acq.previous else None
            log.info("sync already running (started %s); skipping", started)
            return SyncOutcome(status="already_running")

        previous = acq.previous
        mode = next_mode(previous)
        watermark = previous.watermark if previous and previous.watermark else None
        log.info("sync cycle starting mode=%s watermark=%s", mode.value, watermark)

        try:
            # a fresh provider per cycle so the request budget starts at zero
            result = await self.provider_factory().fetch_cycle(mode, watermark)
            self._check_complete(mode, result)

            async with self._uow() as uow:
                outcome = await self._apply(uow, result, mode)
                counts = counts_by_status(await uow.listings.read_all())
                state = await uow.sync_state.mark_success(result.new_watermark, counts, self.now())
        except Exception as e:
            message = f"{type(e).__name__}: {e}"
            log.exception("sync cycle failed mode=%s", mode.value)
            async with self._uow() as uow:
                await uow.sync_state.mark_failed(message, previous, self.now())
            return SyncOutcome(status="error", mode=mode.value, error=message)

        outcome.watermark = state.watermark
        log.info(
            "sync cycle done mode=%s fetched=%d matched=%d unmatched=%d added=%d updated=%d deduped=%d watermark=%s",
            mode.value, outcome.fetched, outcome.matched, outcome.unmatched,
            outcome.added, outcome.updated, outcome.deduped, outcome.watermark,
        )
        return outcome

    def _check_complete(self, mode: ReplicationMode, result: CycleResult) -> None:
        floor = self.min_initial_listings if self.min_initial_listings is not None else settings.SYNC_MIN_INITIAL_LISTINGS
        if mode == ReplicationMode.initial and floor > 0 and len(result.records) < floor:
            raise IncompleteImportError(
                f"initial import returned {len(result.records)} listings, expected at least {floor}"
            )

    async def _apply(self, uow: SqlAlchemyUnitOfWork, result: CycleResult, mode: ReplicationMode) -> SyncOutcome:
        buildings = self.buildings if self.buildings is not None else configured_buildings()
        routed = route_records(result.records, buildings)
        stats = await store_partitions(uow, routed)

        captured_at = self.now()
        await uow.snapshots.append(
            ListingSnapshot(listing_id=r.id, captured_at=captured_at, status=r.status, list_price=r.list_price)
            for recs in routed.by_partition.values()
            for r in recs
        )

        return SyncOutcome(
            status="success",
            mode=mode.value,
            fetched=result.fetched or len(result.records),
            matched=routed.matched,
            unmatched=routed.unmatched,
            added=stats.added,
            updated=stats.updated,
            deduped=stats.deduped,
        )


async def run_sync_cycle(session_factory: async_sessionmaker[AsyncSession] | None = None) -> SyncOutcome:
    """Entry point for the scheduler, the API and scripts."""
    return await SyncOrchestrator(session_factory=session_factory).run_cycle()
