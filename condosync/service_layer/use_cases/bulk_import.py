# condosync/service_layer/use_cases/bulk_import.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...domain.buildings import configured_buildings
from ...domain.parsing import utcnow
from ...domain.types import Building, Origin
from ...schemas import ListingRecord, UpstreamProperty
from ..routing import route_records, store_partitions
from ..unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)


@dataclass
class BulkImportResult:
    total: int
    skipped: int
    matched: int
    unmatched: int
    added: int
    updated: int
    deduped: int


def parse_bulk_rows(rows: Iterable[dict[str, Any]], *, imported_at: datetime) -> tuple[list[ListingRecord], int]:
    """
    Rows from a manual export, already keyed by RESO field names (or the
    snake_case equivalents). Rows without a usable id are skipped.
    """
    records: list[ListingRecord] = []
    skipped = 0
    for i, row in enumerate(rows):
        try:
            prop = UpstreamProperty.model_validate(row)
            records.append(prop.to_listing_record(origin=Origin.bulk_import, imported_at=imported_at))
        except ValidationError as e:
            skipped += 1
            log.warning("bulk row %d skipped: %s", i, e.errors()[0].get("msg") if e.errors() else e)
    return records, skipped


async def import_bulk_records(
    rows: Iterable[dict[str, Any]],
    buildings: Sequence[Building] | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    now: datetime | None = None,
) -> BulkImportResult:
    records, skipped = parse_bulk_rows(rows, imported_at=now or utcnow())
    routed = route_records(records, buildings if buildings is not None else configured_buildings())

    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        stats = await store_partitions(uow, routed)

    log.info(
        "bulk import: rows=%d skipped=%d matched=%d unmatched=%d added=%d updated=%d",
        len(records) + skipped, skipped, routed.matched, routed.unmatched, stats.added, stats.updated,
    )
    return BulkImportResult(
        total=len(records),
        skipped=skipped,
        matched=routed.matched,
        unmatched=routed.unmatched,
        added=stats.added,
        updated=stats.updated,
        deduped=stats.deduped,
    )
