# condosync/domain/normalize.py
from __future__ import annotations

import re

from .types import ListingStatus, ListingType

# Residential sub types this engine tracks (condo towers and their townhomes)
ALLOWED_NORM_SUBTYPES: set[str] = {
    "condo",
    "townhouse",
}

# upstream PropertyType value for each category we query
CATEGORY_PROPERTY_TYPES: dict[ListingType, str] = {
    ListingType.sale: "Residential",
    ListingType.lease: "Residential Lease",
}


def normalize_property_subtype(raw: object) -> str:
    """
    Map messy upstream PropertySubType strings into normalized sub types.
    Conservative: unknown => 'unknown'.
    """
    if raw is None:
        return "unknown"

    s = str(raw).strip().lower()
    s = re.sub(r"[\s_/|-]+", " ", s)

    if "condo" in s:
        return "condo"
    if any(k in s for k in ["townhouse", "townhome", "town home", "town house"]):
        return "townhouse"
    if any(k in s for k in ["single family", "singlefamily", "detached", "house"]):
        return "single_family"
    if any(k in s for k in ["manufactured", "mobile"]):
        return "manufactured"
    if any(k in s for k in ["land", "lot", "acreage"]):
        return "land"

    return "unknown"


def is_tracked_subtype(raw: object) -> bool:
    """
    True when the record belongs to the condo/townhome universe.
    Records without any sub type are kept; the area filter already narrows them.
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return True
    return normalize_property_subtype(raw) in ALLOWED_NORM_SUBTYPES


def normalize_status(raw: object) -> ListingStatus:
    if raw is None:
        return ListingStatus.unknown

    s = re.sub(r"\s+", " ", str(raw).strip().lower())
    if not s:
        return ListingStatus.unknown

    if "active under contract" in s or s == "under contract":
        return ListingStatus.active_under_contract
    if "pending" in s:
        return ListingStatus.pending
    if s in ("closed", "sold"):
        return ListingStatus.closed
    if "withdrawn" in s:
        return ListingStatus.withdrawn
    if "hold" in s:
        return ListingStatus.hold
    if "expired" in s:
        return ListingStatus.expired
    if "cancel" in s:
        return ListingStatus.canceled
    if s.startswith("active") or s == "coming soon":
        return ListingStatus.active

    return ListingStatus.unknown


def listing_type_for(property_type: object) -> ListingType:
    """Sale vs Lease comes from the category (PropertyType), never a separate feed."""
    s = str(property_type or "").strip().lower()
    if "lease" in s:
        return ListingType.lease
    return ListingType.sale
