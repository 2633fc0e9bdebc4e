# tests/test_http_resilience.py
import logging

import httpx
import pytest

from condosync.adapters.clients.http_resilience import SafetyCapExceeded, UpstreamTransportError
from condosync.adapters.clients.reso_web_api import ResoWebApiClient

from fakes import FakeClock, RecordingTransport, json_response, make_http


@pytest.mark.asyncio
async def test_endless_next_link_hits_safety_cap_without_extra_send():
    def handler(request: httpx.Request) -> httpx.Response:
        n = len(transport.requests)
        return json_response({"value": [], "@odata.nextLink": f"https://mls.test/Property?page={n + 1}"})

    transport = RecordingTransport(handler)
    clock = FakeClock()
    http = make_http(transport, clock, max_requests=5, page_delay_s=2.0)
    client = ResoWebApiClient(http=http, base_url="https://mls.test")

    with pytest.raises(SafetyCapExceeded):
        async for _ in client.iter_property_pages("MlgCanView eq true"):
            pass

    # the over-cap request is counted but never sent
    assert len(transport.requests) == 5
    assert http.request_count == 6


@pytest.mark.asyncio
async def test_hot_rate_backs_off_before_sending(caplog):
    transport = RecordingTransport(lambda r: json_response({"value": []}))
    clock = FakeClock()
    http = make_http(transport, clock)

    with caplog.at_level(logging.INFO, logger="condosync.adapters.clients.http_resilience"):
        await http.request("https://mls.test/Property")  # 1 req / 1s floor
        assert clock.sleeps == []

        await http.request("https://mls.test/Property")  # 2 req/s > 1.5
        assert clock.sleeps == [2.0]

        await http.request("https://mls.test/Property")  # 3 req over 2s = 1.5, not above
        assert clock.sleeps == [2.0]

    assert "upstream request #1" in caplog.text
    assert "backing off" in caplog.text
    assert len(transport.requests) == 3


@pytest.mark.asyncio
async def test_pause_applies_baseline_page_delay():
    clock = FakeClock()
    http = make_http(RecordingTransport(lambda r: json_response({})), clock, page_delay_s=2.0)
    await http.pause()
    assert clock.sleeps == [2.0]


@pytest.mark.asyncio
async def test_bearer_token_sent():
    transport = RecordingTransport(lambda r: json_response({"value": []}))
    http = make_http(transport, FakeClock(), access_token="abc123")
    await http.request("https://mls.test/Property", params={"$top": 5})

    sent = transport.requests[0]
    assert sent.headers["authorization"] == "Bearer abc123"
    assert sent.url.params["$top"] == "5"


@pytest.mark.asyncio
async def test_non_2xx_is_fatal_with_context():
    transport = RecordingTransport(lambda r: httpx.Response(503, text="maintenance"))
    http = make_http(transport, FakeClock())

    with pytest.raises(UpstreamTransportError) as ei:
        await http.request("https://mls.test/Property", page=2)

    err = ei.value
    assert isinstance(err, httpx.HTTPError)
    assert err.status_code == 503
    assert err.page == 2
    assert err.url == "https://mls.test/Property"


@pytest.mark.asyncio
async def test_malformed_json_is_fatal():
    transport = RecordingTransport(lambda r: httpx.Response(200, content=b"<html>nope</html>"))
    http = make_http(transport, FakeClock())

    with pytest.raises(UpstreamTransportError, match="malformed JSON"):
        await http.request("https://mls.test/Property")


@pytest.mark.asyncio
async def test_timeout_is_fatal():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    http = make_http(RecordingTransport(handler), FakeClock())

    with pytest.raises(UpstreamTransportError, match="timeout"):
        await http.request("https://mls.test/Property", page=1)


def test_clients_do_not_share_budgets():
    a = make_http(RecordingTransport(lambda r: json_response({})), FakeClock())
    b = make_http(RecordingTransport(lambda r: json_response({})), FakeClock())
    a.budget.request_count = 10
    assert b.request_count == 0
