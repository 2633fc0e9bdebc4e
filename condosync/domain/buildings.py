# condosync/domain/buildings.py
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path

from ..config import settings
from .types import Building

DEFAULT_BUILDINGS_FILE = Path(__file__).resolve().parent.parent / "data" / "buildings.json"


def load_buildings(path: str | Path | None = None) -> list[Building]:
    """
    Read the known buildings (the partition keys) from a JSON list of
    {"slug", "name", "address"} objects. File order is the matcher's tie-break.
    """
    p = Path(path) if path else DEFAULT_BUILDINGS_FILE
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, list):
        raise ValueError(f"buildings file must hold a JSON list: {p}")

    out: list[Building] = []
    seen: set[str] = set()
    for item in raw:
        slug = str(item["slug"]).strip()
        if slug in seen:
            raise ValueError(f"duplicate building slug {slug!r} in {p}")
        seen.add(slug)
        out.append(Building(slug=slug, name=str(item.get("name") or ""), address=str(item["address"])))
    return out


@lru_cache(maxsize=1)
def configured_buildings() -> tuple[Building, ...]:
    return tuple(load_buildings(settings.BUILDINGS_FILE))
