# tests/test_bulk_import_and_rematch.py
import pytest

from condosync.adapters.repos.listings import ListingCacheRepository
from condosync.domain.types import UNMATCHED_PARTITION, Building, Origin
from condosync.service_layer import queries
from condosync.service_layer.use_cases.bulk_import import import_bulk_records
from condosync.service_layer.use_cases.rematch import rematch_all

from fakes import T0, make_record, upstream_item


@pytest.mark.asyncio
async def test_bulk_import_tags_origin_and_routes(async_session_maker, buildings):
    rows = [
        upstream_item("4939483"),
        upstream_item("ACT5000", StreetNumber="", StreetName="", UnparsedAddress="9 Nowhere Rd"),
        {"ListPrice": 100},  # no id
    ]

    res = await import_bulk_records(rows, buildings, session_factory=async_session_maker, now=T0)

    assert (res.total, res.skipped, res.matched, res.unmatched, res.added) == (2, 1, 1, 1, 2)

    listings = await queries.get_all_listings(session_factory=async_session_maker)
    assert {r.id for r in listings} == {"4939483", "5000"}
    assert all(r.origin == Origin.bulk_import for r in listings)
    assert await queries.get_unmatched_addresses(session_factory=async_session_maker) == ["9 Nowhere Rd"]


@pytest.mark.asyncio
async def test_bulk_reimport_updates_instead_of_adding(async_session_maker, buildings):
    rows = [upstream_item("ACT1"), upstream_item("ACT2")]
    await import_bulk_records(rows, buildings, session_factory=async_session_maker, now=T0)
    again = await import_bulk_records(rows, buildings, session_factory=async_session_maker, now=T0)

    assert (again.added, again.updated) == (0, 2)


@pytest.mark.asyncio
async def test_rematch_moves_records_after_building_list_changes(async_session_maker, buildings):
    async with async_session_maker() as session:
        cache = ListingCacheRepository(session)
        await cache.upsert(UNMATCHED_PARTITION, [make_record("1", address="44 East Ave")])
        # stored under the wrong building on a previous import
        await cache.upsert("seaholm-residences", [make_record("2", address="301 West Ave")])
        await cache.upsert("seaholm-residences", [make_record("3", address="222 West Ave")])
        await session.commit()

    updated = list(buildings) + [Building(slug="44-east", name="44 East", address="44 East Ave")]
    moves = await rematch_all(updated, session_factory=async_session_maker)

    assert sorted((m.listing_id, m.from_key, m.to_key) for m in moves) == [
        ("1", UNMATCHED_PARTITION, "44-east"),
        ("2", "seaholm-residences", "the-independent"),
    ]

    async with async_session_maker() as session:
        cache = ListingCacheRepository(session)
        assert await cache.partition_keys() == ["44-east", "seaholm-residences", "the-independent"]
        (moved,) = await cache.read_partition("the-independent")
    assert moved.building_name == "The Independent"


@pytest.mark.asyncio
async def test_status_and_cache_clear(async_session_maker, buildings):
    await import_bulk_records([upstream_item("ACT1")], buildings, session_factory=async_session_maker, now=T0)

    status = await queries.get_sync_status(session_factory=async_session_maker)
    assert status.sync_state is None
    assert status.next_sync_mode == "initial"
    assert status.partitions == {"seaholm-residences": 1}
    assert status.total_listings == 1

    assert await queries.clear_cache(session_factory=async_session_maker) == 1
    assert await queries.get_all_listings(session_factory=async_session_maker) == []
