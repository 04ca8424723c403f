"""Run one push queue tick, for hosts that schedule delivery with cron.

Usage:
    python scripts/process_push_queue.py          # Claim and deliver one batch
    python scripts/process_push_queue.py --stats  # Print the pending entry count

Set PUSH_WORKER_ENABLED=false on the API process when delivery runs from here.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path

PROJECT_DIR = Path(__file__).resolve().parent.parent
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from push_service.core.config import settings  # noqa: E402
from push_service.db.session import AsyncSessionLocal  # noqa: E402
from push_service.services.push_queue import DeliveryQueue  # noqa: E402
from push_service.services.push_worker import build_push_worker  # noqa: E402


async def tick() -> None:
    result = await build_push_worker(settings).tick()
    print(
        f"claimed={result.claimed} completed={result.completed} "
        f"retrying={result.retrying} dropped={result.dropped} reclaimed={result.reclaimed}"
    )


async def stats() -> None:
    async with AsyncSessionLocal() as session:
        pending = await DeliveryQueue(settings).pending_count(session)
    print(f"pending={pending}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s [%(name)s] %(message)s")
    if "--stats" in sys.argv:
        asyncio.run(stats())
    else:
        asyncio.run(tick())
