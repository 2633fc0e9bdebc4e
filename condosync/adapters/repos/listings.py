# condosync/adapters/repos/listings.py
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...domain.parsing import ensure_aware_utc, normalize_id, parse_timestamp, utcnow
from ...domain.policies import fit_to_ceiling, trim
from ...domain.types import Origin, UpsertResult
from ...models import ListingPartition
from ...schemas import ListingRecord

log = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def authority_key(rec: ListingRecord) -> tuple[bool, datetime]:
    """AutoSync beats BulkImport; within the same origin the newer import wins."""
    return (rec.origin == Origin.auto_sync, ensure_aware_utc(rec.imported_at))


def _age_key(rec: ListingRecord) -> tuple[datetime, datetime]:
    return (parse_timestamp(rec.modified_at) or _EPOCH, ensure_aware_utc(rec.imported_at))


def _dump(rec: ListingRecord) -> dict[str, Any]:
    return rec.model_dump(mode="json")


class ListingCacheRepository:
    """
    Partitioned listing cache: one row per building slug (plus "_unmatched"),
    each holding its records as a JSON array.
    """

    def __init__(self, session: AsyncSession, *, max_bytes: int | None = None):
        self.session = session
        self.max_bytes = int(max_bytes if max_bytes is not None else settings.PARTITION_MAX_BYTES)

    async def _get_row(self, key: str) -> ListingPartition | None:
        return await self.session.get(ListingPartition, key)

    @staticmethod
    def _decode(row: ListingPartition | None) -> list[ListingRecord]:
        if row is None or not row.payload_json:
            return []
        return [ListingRecord.model_validate(d) for d in json.loads(row.payload_json)]

    async def _write(self, key: str, records: list[ListingRecord], row: ListingPartition | None = None) -> list[ListingRecord]:
        trimmed = [trim(r) for r in records]
        kept, payload = fit_to_ceiling(
            trimmed,
            max_bytes=self.max_bytes,
            dump=_dump,
            age_key=_age_key,
            label=f"partition {key!r}",
        )

        if row is None:
            row = await self._get_row(key)
        if row is None:
            row = ListingPartition(key=key)
            self.session.add(row)

        row.payload_json = json.dumps(payload, separators=(",", ":"))
        row.record_count = len(kept)
        row.updated_at = utcnow()
        return kept

    async def read_partition(self, key: str) -> list[ListingRecord]:
        return self._decode(await self._get_row(key))

    async def upsert(self, partition_key: str, records: Iterable[ListingRecord]) -> UpsertResult:
        row = await self._get_row(partition_key)
        by_id: dict[str, ListingRecord] = {r.id: r for r in self._decode(row)}

        added = 0
        updated = 0
        for rec in records:
            if rec.partition_key != partition_key:
                rec = rec.model_copy(update={"partition_key": partition_key})
            if rec.id in by_id:
                updated += 1
            else:
                added += 1
            by_id[rec.id] = rec

        kept = await self._write(partition_key, list(by_id.values()), row)
        log.debug("upsert %s: added=%d updated=%d total=%d", partition_key, added, updated, len(kept))
        return UpsertResult(added=added, updated=updated, total=len(kept))

    async def reconcile_across_partitions(self, target_key: str, ids: Iterable[str]) -> int:
        """Remove `ids` from every partition except `target_key`. Returns how many were removed."""
        wanted = {normalize_id(i) for i in ids}
        wanted.discard("")
        if not wanted:
            return 0

        q = select(ListingPartition).where(ListingPartition.key != target_key)
        rows = (await self.session.execute(q)).scalars().all()

        removed = 0
        for row in rows:
            current = self._decode(row)
            remaining = [r for r in current if r.id not in wanted]
            if len(remaining) == len(current):
                continue
            n = len(current) - len(remaining)
            removed += n
            log.info("reconcile: moved %d record(s) out of %s into %s", n, row.key, target_key)
            await self._write(row.key, remaining, row)
        return removed

    async def replace_partition(self, key: str, records: list[ListingRecord]) -> int:
        """Overwrite a partition wholesale. Empty partitions are removed."""
        row = await self._get_row(key)
        if not records:
            if row is not None:
                await self.session.delete(row)
            return 0
        return len(await self._write(key, records, row))

    async def read_all(self) -> list[ListingRecord]:
        rows = (await self.session.execute(select(ListingPartition).order_by(ListingPartition.key))).scalars().all()

        best: dict[str, ListingRecord] = {}
        for row in rows:
            for rec in self._decode(row):
                cur = best.get(rec.id)
                if cur is None or authority_key(rec) > authority_key(cur):
                    best[rec.id] = rec
        return list(best.values())

    async def partition_keys(self) -> list[str]:
        q = select(ListingPartition.key).order_by(ListingPartition.key)
        return list((await self.session.execute(q)).scalars().all())

    async def partition_counts(self) -> dict[str, int]:
        q = select(ListingPartition.key, ListingPartition.record_count).order_by(ListingPartition.key)
        return {k: int(n or 0) for k, n in (await self.session.execute(q)).all()}

    async def clear(self) -> int:
        res = await self.session.execute(delete(ListingPartition))
        return int(res.rowcount or 0)
