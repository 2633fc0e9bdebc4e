from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain.normalize import listing_type_for, normalize_status
from .domain.parsing import normalize_id, title_case_if_shouting, to_float, to_int
from .domain.types import ListingStatus, ListingType, Origin


def compute_price_per_area(price: float | None, area: float | None) -> float:
    if not price or not area or area <= 0:
        return 0.0
    return price / area


def _to_date(v: Any) -> date | None:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    try:
        return date.fromisoformat(str(v).strip()[:10])
    except ValueError:
        return None


class ListingRecord(BaseModel):
    """One normalized listing as stored in a partition."""

    id: str
    partition_key: str | None = None

    address: str = ""
    unit_label: str = ""
    building_name: str = ""

    status: ListingStatus = ListingStatus.unknown
    listing_type: ListingType = ListingType.sale
    property_sub_type: str | None = None

    list_price: float = 0.0
    close_price: float | None = None
    living_area: float = 0.0
    bedroom_count: int = 0
    bathroom_count: int = 0
    price_per_area: float = 0.0

    list_date: date | None = None
    close_date: date | None = None
    modified_at: str | None = None  # upstream ModificationTimestamp, verbatim

    origin: Origin
    imported_at: datetime

    # free text / debugging payload, dropped by trim() before persistence
    public_remarks: str | None = None
    private_remarks: str | None = None
    raw: dict[str, Any] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalized_id(cls, v: Any) -> str:
        nid = normalize_id(v)
        if not nid:
            raise ValueError("listing id is required")
        return nid

    @field_validator("list_date", "close_date", mode="before")
    @classmethod
    def _dates(cls, v: Any) -> date | None:
        return _to_date(v)


class UpstreamProperty(BaseModel):
    """
    Boundary schema for a RESO Property item (MLS Grid flavour).

    Accepts the upstream PascalCase names or snake_case field names, so bulk
    rows and feed items go through the same coercion.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    listing_id: str | None = Field(default=None, alias="ListingId")
    listing_key: str | None = Field(default=None, alias="ListingKey")
    street_number: str = Field(default="", alias="StreetNumber")
    street_name: str = Field(default="", alias="StreetName")
    unparsed_address: str = Field(default="", alias="UnparsedAddress")
    unit_number: str = Field(default="", alias="UnitNumber")
    building_name: str = Field(default="", alias="BuildingName")

    list_price: float | None = Field(default=None, alias="ListPrice")
    close_price: float | None = Field(default=None, alias="ClosePrice")
    bedrooms_total: int | None = Field(default=None, alias="BedroomsTotal")
    bathrooms_total: int | None = Field(default=None, alias="BathroomsTotalInteger")
    living_area: float | None = Field(default=None, alias="LivingArea")

    standard_status: str | None = Field(default=None, alias="StandardStatus")
    listing_contract_date: date | None = Field(default=None, alias="ListingContractDate")
    close_date: date | None = Field(default=None, alias="CloseDate")
    modification_timestamp: str | None = Field(default=None, alias="ModificationTimestamp")

    property_type: str | None = Field(default=None, alias="PropertyType")
    property_sub_type: str | None = Field(default=None, alias="PropertySubType")
    mls_area_major: str | None = Field(default=None, alias="MLSAreaMajor")

    public_remarks: str | None = Field(default=None, alias="PublicRemarks")
    private_remarks: str | None = Field(default=None, alias="PrivateRemarks")

    @field_validator(
        "listing_id", "listing_key", "standard_status", "modification_timestamp",
        "property_type", "property_sub_type", "mls_area_major", "public_remarks", "private_remarks",
        mode="before",
    )
    @classmethod
    def _optional_str(cls, v: Any) -> str | None:
        if v is None:
            return None
        s = str(v).strip()
        return s or None

    @field_validator("street_number", "street_name", "unparsed_address", "unit_number", "building_name", mode="before")
    @classmethod
    def _str(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("list_price", "close_price", "living_area", mode="before")
    @classmethod
    def _float(cls, v: Any) -> float | None:
        return to_float(v)

    @field_validator("bedrooms_total", "bathrooms_total", mode="before")
    @classmethod
    def _int(cls, v: Any) -> int | None:
        return to_int(v)

    @field_validator("listing_contract_date", "close_date", mode="before")
    @classmethod
    def _dates(cls, v: Any) -> date | None:
        return _to_date(v)

    @property
    def address(self) -> str:
        built = f"{self.street_number} {self.street_name}".strip()
        return built or self.unparsed_address

    def to_listing_record(
        self,
        *,
        origin: Origin,
        imported_at: datetime,
        listing_type: ListingType | None = None,
        raw: dict[str, Any] | None = None,
    ) -> ListingRecord:
        list_price = self.list_price or 0.0
        living_area = self.living_area or 0.0
        status = normalize_status(self.standard_status)
        # closed sales are compared on what they sold for
        ppa_price = self.close_price if status == ListingStatus.closed and self.close_price else list_price

        return ListingRecord(
            id=self.listing_id or self.listing_key or "",
            address=title_case_if_shouting(self.address),
            unit_label=self.unit_number,
            building_name=title_case_if_shouting(self.building_name),
            status=status,
            listing_type=listing_type or listing_type_for(self.property_type),
            property_sub_type=self.property_sub_type,
            list_price=list_price,
            close_price=self.close_price,
            living_area=living_area,
            bedroom_count=self.bedrooms_total or 0,
            bathroom_count=self.bathrooms_total or 0,
            price_per_area=compute_price_per_area(ppa_price, living_area),
            list_date=self.listing_contract_date,
            close_date=self.close_date,
            modified_at=self.modification_timestamp,
            origin=origin,
            imported_at=imported_at,
            public_remarks=self.public_remarks,
            private_remarks=self.private_remarks,
            raw=raw,
        )


class ListingSnapshot(BaseModel):
    """Point-in-time status/price, appended once per sync for lifecycle analytics."""

    listing_id: str
    captured_at: datetime
    status: ListingStatus
    list_price: float


class SyncState(BaseModel):
    watermark: str = ""
    status: str = "idle"
    last_run_at: datetime | None = None
    counts_by_status: dict[str, int] = Field(default_factory=dict)
    error_message: str | None = None


# ---- API payloads ----

class SyncRunOut(BaseModel):
    status: Literal["success", "error", "already_running"]
    mode: str | None = None
    fetched: int = 0
    matched: int = 0
    unmatched: int = 0
    added: int = 0
    updated: int = 0
    deduped: int = 0
    watermark: str | None = None
    error: str | None = None


class SyncStatusOut(BaseModel):
    sync_state: SyncState | None
    next_sync_mode: str
    partitions: dict[str, int]
    total_listings: int


class ActionResult(BaseModel):
    success: bool = True
    message: str
