# condosync/adapters/clients/http_resilience.py
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from ...config import settings

log = logging.getLogger(__name__)


class UpstreamTransportError(httpx.HTTPError):
    """Timeout, network failure, non-2xx or malformed JSON. Fatal to the cycle."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        page: int | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(f"{message} (url={url}, page={page})")
        self.url = url
        self.page = page
        self.status_code = status_code


class SafetyCapExceeded(RuntimeError):
    """
    Request cap for one cycle exceeded. Signals a pagination loop or a
    misconfigured filter; never retried within the cycle.
    """


@dataclass
class RequestBudget:
    """Per-cycle counters. One per client instance, never shared."""

    max_requests: int
    cycle_started_at: float
    request_count: int = 0


class RateLimitedHttpClient:
    """
    Outbound GET with a hard per-cycle request cap and adaptive delay.

    The caller applies the baseline inter-page delay via pause(); request()
    only adds the extra backoff when the observed rate runs hot.
    """

    def __init__(
        self,
        *,
        access_token: str | None = None,
        max_requests: int | None = None,
        warn_rps: float | None = None,
        backoff_delay_s: float | None = None,
        page_delay_s: float | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.access_token = access_token if access_token is not None else settings.MLSGRID_ACCESS_TOKEN
        self.warn_rps = float(warn_rps if warn_rps is not None else settings.HTTP_WARN_RPS)
        self.backoff_delay_s = float(backoff_delay_s if backoff_delay_s is not None else settings.HTTP_BACKOFF_DELAY_S)
        self.page_delay_s = float(page_delay_s if page_delay_s is not None else settings.HTTP_PAGE_DELAY_S)
        self.timeout = httpx.Timeout(float(timeout_s if timeout_s is not None else settings.HTTP_TIMEOUT_S))
        self._transport = transport
        self._clock = clock
        self._sleep = sleep
        self.budget = RequestBudget(
            max_requests=int(max_requests if max_requests is not None else settings.HTTP_MAX_REQUESTS_PER_CYCLE),
            cycle_started_at=clock(),
        )

    @property
    def request_count(self) -> int:
        return self.budget.request_count

    def observed_rate(self) -> float:
        # floor the window at 1s so the first request of a cycle isn't "infinitely fast"
        elapsed = max(self._clock() - self.budget.cycle_started_at, 1.0)
        return self.budget.request_count / elapsed

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json", "accept-encoding": "gzip"}
        if self.access_token:
            headers["authorization"] = f"Bearer {self.access_token}"
        return headers

    async def pause(self) -> None:
        """Baseline delay between pages (~0.5 req/s steady state)."""
        if self.page_delay_s > 0:
            await self._sleep(self.page_delay_s)

    async def request(self, url: str, *, params: dict[str, Any] | None = None, page: int | None = None) -> dict[str, Any]:
        self.budget.request_count += 1
        seq = self.budget.request_count
        if seq > self.budget.max_requests:
            raise SafetyCapExceeded(
                f"safety cap exceeded: request #{seq} > {self.budget.max_requests} this cycle (url={url})"
            )

        rate = self.observed_rate()
        log.info("upstream request #%d page=%s rate=%.3f req/s", seq, page, rate)
        if rate > self.warn_rps:
            log.warning("request rate %.3f req/s above %.2f; backing off %.1fs", rate, self.warn_rps, self.backoff_delay_s)
            await self._sleep(self.backoff_delay_s)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(url, headers=self._headers(), params=params)
        except httpx.TimeoutException as e:
            raise UpstreamTransportError(f"timeout: {type(e).__name__}", url=url, page=page) from e
        except httpx.TransportError as e:
            raise UpstreamTransportError(f"network error: {e}", url=url, page=page) from e

        if not resp.is_success:
            raise UpstreamTransportError(
                f"upstream returned {resp.status_code}: {resp.text[:500]}",
                url=url,
                page=page,
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise UpstreamTransportError("malformed JSON body", url=url, page=page) from e
        if not isinstance(data, dict):
            raise UpstreamTransportError(f"unexpected JSON envelope: {type(data).__name__}", url=url, page=page)
        return data
