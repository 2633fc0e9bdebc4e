# tests/test_sync_cycle.py
from datetime import timedelta

import httpx
import pytest

from condosync.adapters.clients.reso_web_api import ResoWebApiClient
from condosync.adapters.ingestion.base import CycleResult
from condosync.adapters.ingestion.mls_grid import MlsGridReplicationClient
from condosync.adapters.repos.listings import ListingCacheRepository
from condosync.adapters.repos.snapshots import SnapshotRepository
from condosync.adapters.repos.sync_state import SyncStateRepository
from condosync.domain.types import UNMATCHED_PARTITION, Origin, ReplicationMode
from condosync.service_layer.use_cases.sync import SyncOrchestrator

from fakes import T0, FakeClock, RecordingTransport, json_response, make_http, make_record, upstream_item

W0 = "2025-02-28T00:00:00.000Z"
W1 = "2025-03-01T10:00:00.000Z"


class StubProvider:
    def __init__(self, result: CycleResult | None = None, exc: Exception | None = None) -> None:
        self.result = result or CycleResult()
        self.exc = exc
        self.calls: list[tuple[ReplicationMode, str | None]] = []

    async def fetch_cycle(self, mode, watermark=None):
        self.calls.append((mode, watermark))
        if self.exc is not None:
            raise self.exc
        return self.result


def orchestrator(maker, provider, buildings, now=T0, **kw):
    return SyncOrchestrator(
        session_factory=maker,
        provider_factory=lambda: provider,
        buildings=buildings,
        now=lambda: now,
        **kw,
    )


async def _state(maker):
    async with maker() as session:
        return await SyncStateRepository(session).read()


async def _seed_state(maker, watermark=W0):
    async with maker() as session:
        repo = SyncStateRepository(session)
        await repo.try_acquire(T0 - timedelta(hours=1))
        await repo.mark_success(watermark, {"Active": 1}, T0 - timedelta(hours=1))
        await session.commit()


@pytest.mark.asyncio
async def test_first_cycle_routes_and_commits_watermark(async_session_maker, buildings):
    records = [
        make_record("ACT1", address="222 West Ave"),
        make_record("ACT2", address="40 Interstate 35"),
        make_record("ACT3", address="9 Nowhere Rd"),
    ]
    provider = StubProvider(CycleResult(records=records, new_watermark=W1, fetched=5))

    out = await orchestrator(async_session_maker, provider, buildings).run_cycle()

    assert provider.calls == [(ReplicationMode.initial, None)]
    assert out.status == "success"
    assert out.mode == "initial"
    assert (out.fetched, out.matched, out.unmatched, out.added, out.updated) == (5, 2, 1, 3, 0)
    assert out.watermark == W1

    state = await _state(async_session_maker)
    assert state.status == "success"
    assert state.watermark == W1
    assert state.counts_by_status == {"Active": 3, "sale": 3, "total": 3}

    async with async_session_maker() as session:
        cache = ListingCacheRepository(session)
        assert [r.id for r in await cache.read_partition("seaholm-residences")] == ["1"]
        assert [r.id for r in await cache.read_partition("the-modern-austin")] == ["2"]
        assert [r.id for r in await cache.read_partition(UNMATCHED_PARTITION)] == ["3"]
        snaps = await SnapshotRepository(session).read_bucket("2025-03")
    assert sorted(s.listing_id for s in snaps) == ["1", "2", "3"]

    # next cycle is incremental from the committed watermark
    await orchestrator(async_session_maker, provider, buildings, now=T0 + timedelta(minutes=15)).run_cycle()
    assert provider.calls[-1] == (ReplicationMode.incremental, W1)


@pytest.mark.asyncio
async def test_empty_incremental_keeps_watermark(async_session_maker, buildings):
    await _seed_state(async_session_maker)
    provider = StubProvider(CycleResult(records=[], new_watermark=None))

    out = await orchestrator(async_session_maker, provider, buildings).run_cycle()

    assert out.status == "success"
    assert provider.calls == [(ReplicationMode.incremental, W0)]
    state = await _state(async_session_maker)
    assert state.status == "success"
    assert state.watermark == W0


@pytest.mark.asyncio
async def test_transport_error_on_page_two_of_three_preserves_watermark(async_session_maker, buildings):
    await _seed_state(async_session_maker)
    async with async_session_maker() as session:
        await ListingCacheRepository(session).upsert("seaholm-residences", [make_record("100")])
        await session.commit()

    def handler(request: httpx.Request) -> httpx.Response:
        cursor = request.url.params.get("cursor")
        if cursor == "2":
            return httpx.Response(502, text="bad gateway")
        if cursor == "3":
            return json_response({"value": [upstream_item("ACT3")]})
        return json_response(
            {
                "value": [upstream_item("ACT1", ModificationTimestamp="2025-03-05T00:00:00Z")],
                "@odata.nextLink": "https://mls.test/Property?cursor=2",
            }
        )

    clock = FakeClock()
    transport = RecordingTransport(handler)
    client = MlsGridReplicationClient(
        client=ResoWebApiClient(http=make_http(transport, clock), base_url="https://mls.test"),
        now=lambda: T0,
    )
    sync = SyncOrchestrator(
        session_factory=async_session_maker,
        provider_factory=lambda: client,
        buildings=buildings,
        now=lambda: T0,
    )

    out = await sync.run_cycle()

    assert out.status == "error"
    assert "UpstreamTransportError" in out.error
    assert len(transport.requests) == 2

    state = await _state(async_session_maker)
    assert state.status == "error"
    assert state.watermark == W0
    assert "502" in state.error_message

    # data is exactly as before the cycle
    async with async_session_maker() as session:
        cache = ListingCacheRepository(session)
        assert await cache.partition_keys() == ["seaholm-residences"]
        assert [r.id for r in await cache.read_all()] == ["100"]


@pytest.mark.asyncio
async def test_first_run_failure_stays_initial(async_session_maker, buildings):
    provider = StubProvider(exc=RuntimeError("upstream down"))

    out = await orchestrator(async_session_maker, provider, buildings).run_cycle()

    assert out.status == "error"
    assert out.error == "RuntimeError: upstream down"
    assert await _state(async_session_maker) is None

    provider.exc = None
    await orchestrator(async_session_maker, provider, buildings).run_cycle()
    assert [c[0] for c in provider.calls] == [ReplicationMode.initial, ReplicationMode.initial]


@pytest.mark.asyncio
async def test_failure_while_storing_rolls_back_data(async_session_maker, buildings, monkeypatch):
    await _seed_state(async_session_maker)

    async def _explode(self, snapshots):
        raise RuntimeError("disk full")

    monkeypatch.setattr(SnapshotRepository, "append", _explode)
    provider = StubProvider(CycleResult(records=[make_record("1")], new_watermark=W1))

    out = await orchestrator(async_session_maker, provider, buildings).run_cycle()

    assert out.status == "error"
    state = await _state(async_session_maker)
    assert state.watermark == W0
    async with async_session_maker() as session:
        assert await ListingCacheRepository(session).read_all() == []


@pytest.mark.asyncio
async def test_overlapping_cycle_reports_already_running(async_session_maker, buildings):
    async with async_session_maker() as session:
        await SyncStateRepository(session).try_acquire(T0 - timedelta(minutes=3))
        await session.commit()

    provider = StubProvider(CycleResult(records=[make_record("1")], new_watermark=W1))
    out = await orchestrator(async_session_maker, provider, buildings).run_cycle()

    assert out.status == "already_running"
    assert provider.calls == []
    assert (await _state(async_session_maker)).status == "in_progress"


@pytest.mark.asyncio
async def test_abandoned_cycle_is_superseded(async_session_maker, buildings):
    async with async_session_maker() as session:
        await SyncStateRepository(session).try_acquire(T0 - timedelta(minutes=11))
        await session.commit()

    provider = StubProvider(CycleResult(records=[make_record("1")], new_watermark=W1))
    out = await orchestrator(async_session_maker, provider, buildings).run_cycle()

    assert out.status == "success"
    assert (await _state(async_session_maker)).watermark == W1


@pytest.mark.asyncio
async def test_sync_moves_bulk_record_out_of_unmatched(async_session_maker, buildings):
    async with async_session_maker() as session:
        bulk = make_record("55", address="Unknown Place", origin=Origin.bulk_import)
        await ListingCacheRepository(session).upsert(UNMATCHED_PARTITION, [bulk])
        await session.commit()

    provider = StubProvider(CycleResult(records=[make_record("ACT55", address="301 West Ave")], new_watermark=W1))
    out = await orchestrator(async_session_maker, provider, buildings).run_cycle()

    assert out.deduped == 1
    async with async_session_maker() as session:
        cache = ListingCacheRepository(session)
        assert await cache.read_partition(UNMATCHED_PARTITION) == []
        (rec,) = await cache.read_all()
    assert rec.partition_key == "the-independent"
    assert rec.origin == Origin.auto_sync


@pytest.mark.asyncio
async def test_small_initial_import_is_rejected(async_session_maker, buildings):
    provider = StubProvider(CycleResult(records=[make_record("1")], new_watermark=W1))

    out = await orchestrator(async_session_maker, provider, buildings, min_initial_listings=10).run_cycle()

    assert out.status == "error"
    assert "IncompleteImportError" in out.error
    assert await _state(async_session_maker) is None
