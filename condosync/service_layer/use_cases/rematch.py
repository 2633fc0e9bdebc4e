# condosync/service_layer/use_cases/rematch.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...domain.address import match_address
from ...domain.buildings import configured_buildings
from ...domain.types import UNMATCHED_PARTITION, Building
from ...schemas import ListingRecord
from ..unit_of_work import SqlAlchemyUnitOfWork

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class RematchMove:
    listing_id: str
    address: str
    from_key: str
    to_key: str


async def rematch_all(
    buildings: Sequence[Building] | None = None,
    *,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> list[RematchMove]:
    """
    Re-run the matcher over every cached record after the building list or
    the matcher changed. Matches on address only: a stored building name may
    be the very thing that was wrong.
    """
    buildings = buildings if buildings is not None else configured_buildings()
    names = {b.slug: b.name for b in buildings}

    moves: list[RematchMove] = []
    async with SqlAlchemyUnitOfWork(session_factory) as uow:
        old_keys = await uow.listings.partition_keys()
        regrouped: dict[str, list[ListingRecord]] = {}

        for old_key in old_keys:
            for rec in await uow.listings.read_partition(old_key):
                new_key = match_address(rec.address, None, buildings).partition_key or UNMATCHED_PARTITION
                if new_key != old_key:
                    moves.append(RematchMove(listing_id=rec.id, address=rec.address, from_key=old_key, to_key=new_key))
                update = {"partition_key": new_key}
                if new_key in names:
                    update["building_name"] = names[new_key]
                regrouped.setdefault(new_key, []).append(rec.model_copy(update=update))

        for key in set(old_keys) | set(regrouped):
            await uow.listings.replace_partition(key, regrouped.get(key, []))

    log.info("rematch: %d record(s) moved", len(moves))
    return moves
