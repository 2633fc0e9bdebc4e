# condosync/domain/address.py
from __future__ import annotations

import logging
import re
from typing import Sequence

from rapidfuzz.distance import Levenshtein

from .types import Building, MatchMethod, MatchResult

log = logging.getLogger(__name__)

# name-aware matching is allowed to be looser than address-only matching
NAME_AWARE_THRESHOLD = 0.75
ADDRESS_ONLY_THRESHOLD = 0.85

# Fixed score for the street-number fallback. It does not grow with the number
# of shared tokens; it only has to clear NAME_AWARE_THRESHOLD.
# TODO: derive from the share of overlapping tokens once enough misses are triaged.
STREET_NUMBER_FALLBACK_CONFIDENCE = 0.76

_SUFFIX_RE = re.compile(
    r"\b(avenue|ave|street|st|road|rd|drive|dr|boulevard|blvd|lane|ln|court|ct|place|pl|way)\b"
)
# only a 1-2 letter directional right after the leading street number ("100 N Lamar")
_DIRECTIONAL_PREFIX_RE = re.compile(r"^(\d+)\s+(ne|nw|se|sw|n|s|e|w)\b")
# unit numbers leak into addresses: drop the indicator and everything after it
_UNIT_RE = re.compile(r"(#|\b(unit|apt|apartment|number|no|ste|suite)\b).*")
_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACES_RE = re.compile(r"\s+")
_STREET_NUMBER_RE = re.compile(r"^(\d+)")


def normalize_address(addr: str | None) -> str:
    """
    Normalize an address (or a building name) for comparison.

    "222 West Ave #1204" -> "222 west"
    "40 N IH 35"         -> "40 ih 35"
    """
    if not addr:
        return ""
    s = addr.lower()
    s = _SUFFIX_RE.sub("", s)
    s = _DIRECTIONAL_PREFIX_RE.sub(r"\1", s.strip())
    s = _UNIT_RE.sub("", s)
    s = _PUNCT_RE.sub("", s)
    return _SPACES_RE.sub(" ", s).strip()


def similarity(a: str, b: str) -> float:
    """Normalized edit-distance similarity in [0, 1]."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 0.0
    return 1.0 - Levenshtein.distance(a, b) / max_len


def extract_street_number(addr: str | None) -> str | None:
    m = _STREET_NUMBER_RE.match((addr or "").strip())
    return m.group(1) if m else None


def streets_share_word(a: str, b: str) -> bool:
    words_b = {w for w in b.split() if len(w) > 1}
    return any(w in words_b for w in a.split() if len(w) > 1)


def _street_remainder(addr: str) -> str:
    return _STREET_NUMBER_RE.sub("", normalize_address(addr)).strip()


def match_address(address: str, name: str | None, candidates: Sequence[Building]) -> MatchResult:
    """
    Assign a listing to a known building.

    Each candidate is scored by the better of name similarity and address
    similarity (name wins an exact tie). The best candidate overall is
    accepted above the threshold; ties keep the first candidate seen, so the
    order of `candidates` is the tie-break.

    Below the threshold, a candidate with the same leading street number whose
    street remainder shares a token is accepted at a fixed confidence. Misses
    are logged and returned as an empty MatchResult; this never raises.
    """
    norm_addr = normalize_address(address)
    norm_name = normalize_address(name) if name else ""
    threshold = NAME_AWARE_THRESHOLD if norm_name else ADDRESS_ONLY_THRESHOLD

    best: MatchResult | None = None
    for building in candidates:
        score = 0.0
        method = MatchMethod.address

        if norm_name:
            name_sim = similarity(norm_name, normalize_address(building.name))
            if name_sim > score:
                score = name_sim
                method = MatchMethod.name

        addr_sim = similarity(norm_addr, normalize_address(building.address))
        if addr_sim > score:
            score = addr_sim
            method = MatchMethod.address

        if best is None or score > best.confidence:
            best = MatchResult(partition_key=building.slug, confidence=score, method=method)

    if best is not None and best.confidence > threshold:
        return best

    # "40 Interstate 35" vs "40 N IH 35": normalization differs but the street
    # number plus a shared street token is specific enough downtown
    street_num = extract_street_number(address)
    if street_num:
        remainder = _street_remainder(address)
        for building in candidates:
            if extract_street_number(building.address) != street_num:
                continue
            if streets_share_word(remainder, _street_remainder(building.address)):
                return MatchResult(
                    partition_key=building.slug,
                    confidence=STREET_NUMBER_FALLBACK_CONFIDENCE,
                    method=MatchMethod.street_number_fallback,
                )

    if name:
        log.warning("UNMATCHED: address=%r normalized=%r building=%r", address, norm_addr, name)
    else:
        log.warning("UNMATCHED: address=%r normalized=%r (no building name)", address, norm_addr)
    return MatchResult(partition_key=None, confidence=0.0)
