# condosync/entrypoints/api/routers/listings.py
from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..deps import require_api_key, session_factory_dep
from ....schemas import ListingRecord
from ....service_layer import queries
from ....service_layer.use_cases.bulk_import import import_bulk_records
from ....service_layer.use_cases.rematch import rematch_all

router = APIRouter(tags=["listings"])


@router.get("/listings", response_model=list[ListingRecord])
async def list_listings(
    building: str | None = Query(None, description="Partition key (building slug or _unmatched)"),
    factory: async_sessionmaker[AsyncSession] = Depends(session_factory_dep),
) -> list[ListingRecord]:
    if building:
        return await queries.get_partition(building, session_factory=factory)
    return await queries.get_all_listings(session_factory=factory)


@router.post("/listings/import", dependencies=[Depends(require_api_key)])
async def listings_import(
    rows: list[dict[str, Any]] = Body(...),
    factory: async_sessionmaker[AsyncSession] = Depends(session_factory_dep),
) -> dict[str, Any]:
    return asdict(await import_bulk_records(rows, session_factory=factory))


@router.post("/listings/rematch", dependencies=[Depends(require_api_key)])
async def listings_rematch(
    factory: async_sessionmaker[AsyncSession] = Depends(session_factory_dep),
) -> dict[str, Any]:
    moves = await rematch_all(session_factory=factory)
    return {
        "success": True,
        "changes_count": len(moves),
        # first 50 only; the full list is in the logs
        "changes": [asdict(m) for m in moves[:50]],
    }
