# condosync/entrypoints/api/routers/health.py
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ..deps import require_api_key
from ....config import settings

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/debug/config", dependencies=[Depends(require_api_key)])
def debug_config() -> dict[str, Any]:
    def _redact(v: str | None) -> str | None:
        if not v:
            return v
        if len(v) <= 8:
            return "***"
        return v[:4] + "***" + v[-4:]

    return {
        "ENV": settings.ENV,
        "CONDOSYNC_DB_URL": settings.CONDOSYNC_DB_URL,
        "MLSGRID_API_URL": settings.MLSGRID_API_URL,
        "MLSGRID_ACCESS_TOKEN": _redact(settings.MLSGRID_ACCESS_TOKEN),
        "MLS_ORIGINATING_SYSTEM": settings.MLS_ORIGINATING_SYSTEM,
        "MLS_AREA_MAJOR": settings.MLS_AREA_MAJOR,
        "HTTP_MAX_REQUESTS_PER_CYCLE": settings.HTTP_MAX_REQUESTS_PER_CYCLE,
        "SCHED_SYNC_INTERVAL_MINUTES": settings.SCHED_SYNC_INTERVAL_MINUTES,
    }
