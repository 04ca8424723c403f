from __future__ import annotations

import asyncio
import logging

from push_service.core.config import Settings

logger = logging.getLogger(__name__)


async def _loop_worker(task_coro, interval: int, name: str) -> None:
    logger.info("%s worker started (interval=%ss)", name, interval)
    try:
        while True:
            try:
                await task_coro()
            except Exception:  # pragma: no cover
                logger.exception("%s worker encountered an error", name)
            await asyncio.sleep(interval)
    except asyncio.CancelledError:  # pragma: no cover
        logger.info("%s worker cancelled", name)
        raise


def start_background_tasks(settings: Settings) -> list[asyncio.Task]:
    from push_service.services.push_worker import build_push_worker

    if not settings.PUSH_WORKER_ENABLED:
        logger.info("push-queue worker disabled")
        return []

    worker = build_push_worker(settings)
    return [
        asyncio.create_task(
            _loop_worker(worker.tick, settings.PUSH_QUEUE_POLL_SECONDS, "push-queue")
        ),
    ]
