# scripts/run_sync_once.py
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict

from condosync.db import engine
from condosync.models import Base
from condosync.service_layer.queries import reset_sync_state
from condosync.service_layer.use_cases.sync import run_sync_cycle


async def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(name)s:%(message)s")
    logging.getLogger("httpx").setLevel(logging.WARNING)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # FULL=1 forces an initial replication
    if os.environ.get("FULL") == "1":
        await reset_sync_state()

    outcome = await run_sync_cycle()
    print(json.dumps(asdict(outcome), indent=2))
    return 0 if outcome.status == "success" else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
