# condosync/adapters/repos/sync_state.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...domain.parsing import ensure_aware_utc
from ...models import SYNC_STATE_ID, SyncStateRow, SyncStatus
from ...schemas import SyncState

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcquireResult:
    acquired: bool
    # state as it was before this attempt; None on a very first run
    previous: SyncState | None


def _to_state(row: SyncStateRow) -> SyncState:
    try:
        counts = json.loads(row.counts_json or "{}")
    except ValueError:
        counts = {}
    return SyncState(
        watermark=row.watermark or "",
        status=row.status.value if isinstance(row.status, SyncStatus) else str(row.status),
        last_run_at=ensure_aware_utc(row.last_run_at) if row.last_run_at else None,
        counts_by_status=counts,
        error_message=row.error_message,
    )


class SyncStateRepository:
    def __init__(self, session: AsyncSession, *, stale_after: timedelta | None = None):
        self.session = session
        self.stale_after = stale_after or timedelta(minutes=settings.SYNC_STALE_AFTER_MINUTES)

    async def _row(self) -> SyncStateRow | None:
        q = (
            select(SyncStateRow)
            .where(SyncStateRow.id == SYNC_STATE_ID)
            .execution_options(populate_existing=True)
        )
        return (await self.session.execute(q)).scalars().first()

    async def read(self) -> SyncState | None:
        row = await self._row()
        return _to_state(row) if row else None

    async def try_acquire(self, now: datetime) -> AcquireResult:
        """
        Flip the state to in_progress unless a fresh run already holds it.

        The flip is a single conditional UPDATE, so two callers cannot both
        win. An in_progress row older than the stale window is treated as an
        abandoned run and taken over.
        """
        now = ensure_aware_utc(now)
        previous = await self.read()

        if previous is None:
            self.session.add(
                SyncStateRow(
                    id=SYNC_STATE_ID,
                    watermark="",
                    status=SyncStatus.in_progress,
                    last_run_at=now,
                    counts_json="{}",
                )
            )
            try:
                await self.session.flush()
            except IntegrityError:
                # acquire runs in its own transaction, so rolling it back loses nothing
                await self.session.rollback()
                log.info("another run created the sync state first")
                return AcquireResult(acquired=False, previous=await self.read())
            return AcquireResult(acquired=True, previous=None)

        cutoff = now - self.stale_after
        stmt = (
            update(SyncStateRow)
            .where(
                SyncStateRow.id == SYNC_STATE_ID,
                or_(
                    SyncStateRow.status != SyncStatus.in_progress,
                    SyncStateRow.last_run_at.is_(None),
                    SyncStateRow.last_run_at < cutoff,
                ),
            )
            .values(status=SyncStatus.in_progress, last_run_at=now, error_message=None)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        acquired = (res.rowcount or 0) == 1

        if acquired and previous.status == SyncStatus.in_progress.value:
            log.warning("taking over abandoned run started at %s", previous.last_run_at)
        return AcquireResult(acquired=acquired, previous=previous)

    async def mark_success(self, watermark: str | None, counts: dict[str, int], now: datetime) -> SyncState:
        row = await self._row()
        if row is None:
            row = SyncStateRow(id=SYNC_STATE_ID, watermark="")
            self.session.add(row)

        # a cycle that saw no records keeps the old watermark
        if watermark is not None:
            row.watermark = watermark
        row.status = SyncStatus.success
        row.last_run_at = ensure_aware_utc(now)
        row.counts_json = json.dumps(counts, sort_keys=True)
        row.error_message = None
        await self.session.flush()
        return _to_state(row)

    async def mark_failed(self, message: str, previous: SyncState | None, now: datetime) -> SyncState | None:
        if previous is None:
            # never completed: drop the lock so the next attempt is still an initial run
            await self.session.execute(delete(SyncStateRow).where(SyncStateRow.id == SYNC_STATE_ID))
            return None

        row = await self._row()
        if row is None:
            row = SyncStateRow(id=SYNC_STATE_ID)
            self.session.add(row)

        row.watermark = previous.watermark
        row.status = SyncStatus.error
        row.last_run_at = ensure_aware_utc(now)
        row.counts_json = json.dumps(previous.counts_by_status, sort_keys=True)
        row.error_message = message[:2000]
        await self.session.flush()
        return _to_state(row)

    async def reset(self) -> bool:
        res = await self.session.execute(delete(SyncStateRow).where(SyncStateRow.id == SYNC_STATE_ID))
        return bool(res.rowcount)
