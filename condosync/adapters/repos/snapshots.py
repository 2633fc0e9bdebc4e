# condosync/adapters/repos/snapshots.py
from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...domain.parsing import ensure_aware_utc, utcnow
from ...domain.policies import fit_to_ceiling
from ...models import SnapshotBucket
from ...schemas import ListingSnapshot


def bucket_key(snap: ListingSnapshot) -> str:
    return ensure_aware_utc(snap.captured_at).strftime("%Y-%m")


def _dump(snap: ListingSnapshot) -> dict[str, Any]:
    return snap.model_dump(mode="json")


class SnapshotRepository:
    """Append-only lifecycle snapshots, bucketed per calendar month."""

    def __init__(self, session: AsyncSession, *, max_bytes: int | None = None):
        self.session = session
        self.max_bytes = int(max_bytes if max_bytes is not None else settings.SNAPSHOT_MAX_BYTES)

    async def read_bucket(self, year_month: str) -> list[ListingSnapshot]:
        row = await self.session.get(SnapshotBucket, year_month)
        if row is None or not row.payload_json:
            return []
        return [ListingSnapshot.model_validate(d) for d in json.loads(row.payload_json)]

    async def append(self, snapshots: Iterable[ListingSnapshot]) -> int:
        grouped: dict[str, list[ListingSnapshot]] = defaultdict(list)
        for s in snapshots:
            grouped[bucket_key(s)].append(s)

        written = 0
        for ym, new in sorted(grouped.items()):
            existing = await self.read_bucket(ym)
            kept, payload = fit_to_ceiling(
                existing + new,
                max_bytes=self.max_bytes,
                dump=_dump,
                age_key=lambda s: ensure_aware_utc(s.captured_at),
                label=f"snapshot bucket {ym}",
            )

            row = await self.session.get(SnapshotBucket, ym)
            if row is None:
                row = SnapshotBucket(year_month=ym)
                self.session.add(row)
            row.payload_json = json.dumps(payload, separators=(",", ":"))
            row.updated_at = utcnow()
            written += len(new)
        return written

    async def bucket_keys(self) -> list[str]:
        q = select(SnapshotBucket.year_month).order_by(SnapshotBucket.year_month)
        return list((await self.session.execute(q)).scalars().all())

    async def clear(self) -> int:
        res = await self.session.execute(delete(SnapshotBucket))
        return int(res.rowcount or 0)
