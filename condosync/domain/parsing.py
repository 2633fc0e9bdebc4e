# condosync/domain/parsing.py
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

_SOURCE_PREFIX_RE = re.compile(r"^[A-Za-z]+(?=\d)")


def to_int(x: Any) -> int | None:
    if x is None or x == "":
        return None
    try:
        return int(float(x))
    except (TypeError, ValueError):
        return None


def to_float(x: Any) -> float | None:
    if x is None or x == "":
        return None
    try:
        return float(x)
    except (TypeError, ValueError):
        return None


def normalize_id(raw: Any) -> str:
    """
    Strip the originating-system prefix from a listing id.

    The feed returns "ACT4939483" while bulk exports carry "4939483";
    both collapse to "4939483".
    """
    if raw is None:
        return ""
    s = str(raw).strip()
    return _SOURCE_PREFIX_RE.sub("", s)


def title_case_if_shouting(value: Any) -> str:
    """Upstream sends some free text in all caps ("222 WEST AVE")."""
    if value is None:
        return ""
    s = str(value).strip()
    if s and s.isupper():
        return s.title()
    return s


def parse_timestamp(value: str | None) -> datetime | None:
    """ISO-8601 (with or without trailing Z) -> aware UTC datetime."""
    if not value:
        return None
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    return ensure_aware_utc(dt)


def ensure_aware_utc(dt: datetime) -> datetime:
    """
    SQLite + SQLAlchemy gives back naive datetimes even when we stored UTC.
    If naive, assume it's UTC and attach tzinfo so comparisons don't explode.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def latest_timestamp(current: str | None, candidate: str | None) -> str | None:
    """Return whichever of two upstream change timestamps is later."""
    if not candidate:
        return current
    if not current:
        return candidate
    cur_dt = parse_timestamp(current)
    cand_dt = parse_timestamp(candidate)
    if cur_dt is None or cand_dt is None:
        # unparseable: fall back to string order (ISO strings sort chronologically)
        return candidate if candidate > current else current
    return candidate if cand_dt > cur_dt else current
