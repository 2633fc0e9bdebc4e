# condosync/domain/types.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

UNMATCHED_PARTITION = "_unmatched"


class ListingStatus(str, Enum):
    active = "Active"
    active_under_contract = "Active Under Contract"
    pending = "Pending"
    closed = "Closed"
    withdrawn = "Withdrawn"
    hold = "Hold"
    expired = "Expired"
    canceled = "Canceled"
    unknown = "Unknown"


class ListingType(str, Enum):
    sale = "Sale"
    lease = "Lease"


class Origin(str, Enum):
    bulk_import = "bulk_import"
    auto_sync = "auto_sync"


class ReplicationMode(str, Enum):
    initial = "initial"
    incremental = "incremental"


class MatchMethod(str, Enum):
    name = "name_match"
    address = "address_match"
    street_number_fallback = "street_number_fallback"
    none = "none"


@dataclass(frozen=True)
class Building:
    slug: str
    name: str
    address: str


@dataclass(frozen=True)
class MatchResult:
    partition_key: str | None
    confidence: float
    method: MatchMethod = MatchMethod.none

    @property
    def matched(self) -> bool:
        return self.partition_key is not None


@dataclass(frozen=True)
class UpsertResult:
    added: int
    updated: int
    total: int
