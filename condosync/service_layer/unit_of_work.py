# condosync/service_layer/unit_of_work.py
from __future__ import annotations

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..adapters.repos.listings import ListingCacheRepository
from ..adapters.repos.snapshots import SnapshotRepository
from ..adapters.repos.sync_state import SyncStateRepository
from ..db import AsyncSessionLocal


class UnitOfWork(Protocol):
    listings: ListingCacheRepository
    sync_state: SyncStateRepository
    snapshots: SnapshotRepository

    async def __aenter__(self) -> "UnitOfWork": ...
    async def __aexit__(self, exc_type, exc, tb) -> None: ...
    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...


class SqlAlchemyUnitOfWork:
    """Commits on clean exit, rolls back when the block raises."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self.session_factory = session_factory or AsyncSessionLocal
        self.session: AsyncSession | None = None

    async def __aenter__(self) -> "SqlAlchemyUnitOfWork":
        self.session = self.session_factory()
        self.listings = ListingCacheRepository(self.session)
        self.sync_state = SyncStateRepository(self.session)
        self.snapshots = SnapshotRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc:
                await self.rollback()
            else:
                await self.commit()
        finally:
            if self.session:
                await self.session.close()

    async def commit(self) -> None:
        assert self.session is not None
        await self.session.commit()

    async def rollback(self) -> None:
        assert self.session is not None
        await self.session.rollback()
