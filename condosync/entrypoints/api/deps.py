# condosync/entrypoints/api/deps.py
from __future__ import annotations

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...config import settings
from ...db import get_session_factory
from ...service_layer.use_cases.sync import SyncOrchestrator


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY:
        if not x_api_key or x_api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")


def session_factory_dep(
    factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> async_sessionmaker[AsyncSession]:
    # use cases open their own transactions; routes only pass the factory along
    return factory


def orchestrator_dep(
    factory: async_sessionmaker[AsyncSession] = Depends(session_factory_dep),
) -> SyncOrchestrator:
    return SyncOrchestrator(session_factory=factory)
