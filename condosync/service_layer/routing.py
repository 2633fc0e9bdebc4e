# condosync/service_layer/routing.py
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..domain.address import match_address
from ..domain.parsing import parse_timestamp
from ..domain.types import UNMATCHED_PARTITION, Building, ListingType
from ..schemas import ListingRecord
from .unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)


@dataclass
class RoutedRecords:
    by_partition: dict[str, list[ListingRecord]] = field(default_factory=dict)
    matched: int = 0
    unmatched: int = 0
    duplicates: int = 0


@dataclass
class StoreStats:
    added: int = 0
    updated: int = 0
    deduped: int = 0


def _newer(a: ListingRecord, b: ListingRecord) -> bool:
    ta, tb = parse_timestamp(a.modified_at), parse_timestamp(b.modified_at)
    if ta is None or tb is None:
        return True
    return ta >= tb


def route_records(records: Iterable[ListingRecord], buildings: Sequence[Building]) -> RoutedRecords:
    """
    Group records by building partition. Unmatched records go to "_unmatched".
    An id seen twice in one batch keeps the most recently modified copy.
    """
    latest: dict[str, ListingRecord] = {}
    duplicates = 0
    for rec in records:
        cur = latest.get(rec.id)
        if cur is not None:
            duplicates += 1
            if not _newer(rec, cur):
                continue
        latest[rec.id] = rec

    out = RoutedRecords(duplicates=duplicates)
    for rec in latest.values():
        result = match_address(rec.address, rec.building_name or None, buildings)
        key = result.partition_key or UNMATCHED_PARTITION
        if result.matched:
            out.matched += 1
        else:
            out.unmatched += 1
        out.by_partition.setdefault(key, []).append(rec.model_copy(update={"partition_key": key}))

    if duplicates:
        log.info("collapsed %d duplicate id(s) within one batch", duplicates)
    return out


async def store_partitions(uow: SqlAlchemyUnitOfWork, routed: RoutedRecords) -> StoreStats:
    """Upsert each partition, then pull the same ids out of every other partition."""
    stats = StoreStats()
    for key in sorted(routed.by_partition):
        records = routed.by_partition[key]
        res = await uow.listings.upsert(key, records)
        stats.added += res.added
        stats.updated += res.updated
        stats.deduped += await uow.listings.reconcile_across_partitions(key, [r.id for r in records])
    return stats


def counts_by_status(records: Iterable[ListingRecord]) -> dict[str, int]:
    counts: Counter[str] = Counter()
    for rec in records:
        counts[rec.status.value] += 1
        counts["lease" if rec.listing_type == ListingType.lease else "sale"] += 1
        counts["total"] += 1
    return dict(counts)
