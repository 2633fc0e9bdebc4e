# condosync/adapters/ingestion/base.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from ...domain.types import ReplicationMode
from ...schemas import ListingRecord


@dataclass(frozen=True)
class CycleResult:
    records: list[ListingRecord] = field(default_factory=list)
    # None unless every category finished without error
    new_watermark: str | None = None
    fetched: int = 0


class ReplicationProvider(Protocol):
    async def fetch_cycle(self, mode: ReplicationMode, watermark: str | None = None) -> CycleResult:
        raise NotImplementedError
