# condosync/domain/policies.py
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Sequence, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")

# fields that can be re-fetched and are too large to keep per record
TRIMMED_FIELDS = ("public_remarks", "private_remarks", "raw")

# share of a bucket evicted per pass when it is over the ceiling
EVICT_FRACTION = 0.3


def trim(record: Any) -> Any:
    """Drop the large free-text fields from a ListingRecord before persistence."""
    if all(getattr(record, f, None) is None for f in TRIMMED_FIELDS):
        return record
    return record.model_copy(update={f: None for f in TRIMMED_FIELDS})


def serialized_size(payload: list[dict[str, Any]]) -> int:
    return len(json.dumps(payload, separators=(",", ":")).encode("utf-8"))


def fit_to_ceiling(
    items: Sequence[T],
    *,
    max_bytes: int,
    dump: Callable[[T], dict[str, Any]],
    age_key: Callable[[T], Any],
    label: str,
) -> tuple[list[T], list[dict[str, Any]]]:
    """
    Evict the oldest ~30% of items until the serialized bucket fits.

    Returns (kept_items, kept_payload). Never refuses: an empty bucket always fits.
    """
    kept = list(items)
    payload = [dump(x) for x in kept]
    size = serialized_size(payload)
    if size <= max_bytes:
        return kept, payload

    kept.sort(key=age_key)
    while kept and size > max_bytes:
        drop = max(1, int(len(kept) * EVICT_FRACTION))
        log.warning(
            "%s is %d bytes (ceiling %d); dropping oldest %d of %d entries",
            label, size, max_bytes, drop, len(kept),
        )
        kept = kept[drop:]
        payload = [dump(x) for x in kept]
        size = serialized_size(payload)
    return kept, payload
