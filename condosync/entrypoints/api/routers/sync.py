# condosync/entrypoints/api/routers/sync.py
from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..deps import orchestrator_dep, require_api_key, session_factory_dep
from ....schemas import ActionResult, SyncRunOut, SyncStatusOut
from ....service_layer import queries
from ....service_layer.use_cases.sync import SyncOrchestrator

router = APIRouter(tags=["sync"])


@router.post("/sync/run", response_model=SyncRunOut, dependencies=[Depends(require_api_key)])
async def sync_run(orchestrator: SyncOrchestrator = Depends(orchestrator_dep)) -> SyncRunOut:
    outcome = SyncRunOut(**asdict(await orchestrator.run_cycle()))
    if outcome.status == "already_running":
        raise HTTPException(status_code=409, detail=outcome.model_dump())
    if outcome.status == "error":
        raise HTTPException(status_code=500, detail=outcome.model_dump())
    return outcome


@router.get("/sync/status", response_model=SyncStatusOut, dependencies=[Depends(require_api_key)])
async def sync_status(
    factory: async_sessionmaker[AsyncSession] = Depends(session_factory_dep),
) -> SyncStatusOut:
    return await queries.get_sync_status(session_factory=factory)


@router.get("/sync/unmatched", dependencies=[Depends(require_api_key)])
async def sync_unmatched(
    factory: async_sessionmaker[AsyncSession] = Depends(session_factory_dep),
) -> dict[str, object]:
    addresses = await queries.get_unmatched_addresses(session_factory=factory)
    return {"count": len(addresses), "addresses": addresses}


@router.post("/sync/reset", response_model=ActionResult, dependencies=[Depends(require_api_key)])
async def sync_reset(
    factory: async_sessionmaker[AsyncSession] = Depends(session_factory_dep),
) -> ActionResult:
    await queries.reset_sync_state(session_factory=factory)
    return ActionResult(message="Sync state reset. Next sync will be a full initial import.")


@router.post("/cache/clear", response_model=ActionResult, dependencies=[Depends(require_api_key)])
async def cache_clear(
    factory: async_sessionmaker[AsyncSession] = Depends(session_factory_dep),
) -> ActionResult:
    removed = await queries.clear_cache(session_factory=factory)
    return ActionResult(message=f"Cache cleared ({removed} partition(s))")
