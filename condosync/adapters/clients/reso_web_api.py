# condosync/adapters/clients/reso_web_api.py
from __future__ import annotations

from typing import Any, AsyncIterator, Iterable

from ...config import settings
from .http_resilience import RateLimitedHttpClient

# MLS Grid only accepts these in $filter; anything else has to be filtered client-side
FILTERABLE_FIELDS: frozenset[str] = frozenset(
    {
        "OriginatingSystemName",
        "PropertyType",
        "StandardStatus",
        "ModificationTimestamp",
        "MlgCanView",
    }
)


def _check_field(field: str) -> None:
    if field not in FILTERABLE_FIELDS:
        raise ValueError(f"{field} is not filterable upstream")


def _quote(value: str) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def eq(field: str, value: Any) -> str:
    _check_field(field)
    if isinstance(value, bool):
        return f"{field} eq {'true' if value else 'false'}"
    return f"{field} eq {_quote(value)}"


def is_in(field: str, values: Iterable[str]) -> str:
    _check_field(field)
    vals = [v for v in values if v]
    if not vals:
        raise ValueError(f"{field} in () needs at least one value")
    return f"{field} in ({','.join(_quote(v) for v in vals)})"


def gt_timestamp(field: str, value: str) -> str:
    _check_field(field)
    # OData datetimes are unquoted literals
    return f"{field} gt {value}"


def and_(*clauses: str) -> str:
    return " and ".join(c for c in clauses if c)


class ResoWebApiClient:
    """Minimal RESO Web API client (OData-ish) over the rate-limited transport."""

    def __init__(
        self,
        *,
        http: RateLimitedHttpClient,
        base_url: str | None = None,
        page_size: int | None = None,
    ) -> None:
        self.http = http
        self.base_url = ((base_url if base_url is not None else settings.MLSGRID_API_URL) or "").rstrip("/")
        self.page_size = int(page_size if page_size is not None else settings.MLS_PAGE_SIZE)

    @property
    def property_url(self) -> str:
        return f"{self.base_url}/Property"

    async def iter_property_pages(self, filter_expr: str) -> AsyncIterator[list[dict[str, Any]]]:
        """
        Yield the `value` items of each page, following the next link until
        the upstream stops sending one. Pages are requested strictly in order.
        """
        url = self.property_url
        params: dict[str, Any] | None = {"$filter": filter_expr, "$top": self.page_size}
        page = 1

        while True:
            data = await self.http.request(url, params=params, page=page)

            items = data.get("value")
            if isinstance(items, list):
                yield [x for x in items if isinstance(x, dict)]
            else:
                yield []

            next_link = data.get("@odata.nextLink") or data.get("nextLink")
            if not next_link:
                return

            # the next link already carries the filter and cursor
            url, params = str(next_link), None
            page += 1
            await self.http.pause()
