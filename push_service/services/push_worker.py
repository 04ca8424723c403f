from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable

from pydantic import ValidationError as PayloadValidationError
from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.core.config import Settings
from push_service.core.errors import DispatchError, PushServiceError, StorageWriteError
from push_service.schemas.push import NotificationPayload
from push_service.services.push_notifications import (
    DeliveryStatus,
    NotificationSender,
    PushRecipient,
)
from push_service.services.push_queue import ClaimedEntry, DeliveryQueue
from push_service.services.push_tokens import TokenStore

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    reclaimed: int = 0
    claimed: int = 0
    completed: int = 0
    retrying: int = 0
    dropped: int = 0
    # Recipients with no transport configured
    skipped: int = 0


class PushQueueWorker:
    """Drains the delivery queue: claim, resolve recipients, dispatch, complete.

    Failed entries stay claimed until the stale-claim sweep hands them back to
    a later tick; once an entry has been attempted PUSH_QUEUE_MAX_ATTEMPTS
    times it is dropped and reported.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        session_factory: Callable[[], AsyncSession],
        queue: DeliveryQueue,
        tokens: TokenStore,
        sender: NotificationSender,
    ) -> None:
        self.session_factory = session_factory
        self.queue = queue
        self.tokens = tokens
        self.sender = sender
        self.batch_size = settings.PUSH_QUEUE_BATCH_SIZE
        self.claim_timeout = timedelta(seconds=settings.PUSH_QUEUE_CLAIM_TIMEOUT_SECONDS)
        self.max_attempts = settings.PUSH_QUEUE_MAX_ATTEMPTS

    async def tick(self) -> TickResult:
        result = TickResult()
        async with self.session_factory() as session:
            result.reclaimed = await self.queue.reclaim_stale(session, self.claim_timeout)
            entries = await self.queue.claim_batch(session, self.batch_size)
            result.claimed = len(entries)
            if not entries:
                logger.debug("push-queue: no pending entries")
                return result
            for entry in entries:
                try:
                    result.skipped += await self._process(session, entry)
                    await self.queue.complete(session, entry.id)
                except PushServiceError as exc:
                    await self._handle_failure(session, entry, exc, result)
                    continue
                result.completed += 1
        logger.info(
            "push-queue: claimed %d, completed %d, retrying %d, dropped %d, skipped %d",
            result.claimed,
            result.completed,
            result.retrying,
            result.dropped,
            result.skipped,
        )
        return result

    async def _handle_failure(
        self,
        session: AsyncSession,
        entry: ClaimedEntry,
        exc: PushServiceError,
        result: TickResult,
    ) -> None:
        """Leave a failed entry claimed for a later retry, or drop it once out of attempts."""
        if entry.attempts < self.max_attempts:
            logger.warning(
                "push-queue: entry %s failed (attempt %d/%d), will retry: %s",
                entry.id,
                entry.attempts,
                self.max_attempts,
                exc,
            )
            result.retrying += 1
            return

        logger.error(
            "push-queue: dropping entry %s after %d attempt(s): %s",
            entry.id,
            entry.attempts,
            exc,
        )
        try:
            await self.queue.complete(session, entry.id)
        except StorageWriteError as drop_exc:
            # Still claimed; the next sweep hands it back and the drop is retried
            logger.error("push-queue: could not drop entry %s: %s", entry.id, drop_exc)
            result.retrying += 1
            return
        result.dropped += 1

    async def _process(self, session: AsyncSession, entry: ClaimedEntry) -> int:
        """Deliver one entry; returns how many recipients the sender skipped."""
        try:
            payload = NotificationPayload.model_validate_json(entry.payload)
        except PayloadValidationError as exc:
            # Retrying cannot fix a payload we do not understand
            logger.error("push-queue: entry %s has an unreadable payload, discarding: %s", entry.id, exc)
            return 0

        tokens = await self.tokens.tokens_for_targets(
            session,
            payload.targets,
            excluding_owner=payload.author,
        )
        if not tokens:
            logger.debug("push-queue: entry %s has no recipients", entry.id)
            return 0

        recipients = [PushRecipient(token_id=token.id, service=token.service, token=token.token) for token in tokens]
        try:
            results = await self.sender.send(recipients, payload.message)
        except Exception as exc:
            raise DispatchError(f"sender raised {type(exc).__name__}: {exc}") from exc

        delivered = [item.token_id for item in results if item.status == DeliveryStatus.delivered]
        invalid = [item.token_id for item in results if item.status == DeliveryStatus.invalid]
        failed = [item.token_id for item in results if item.status == DeliveryStatus.failed]
        skipped = sum(1 for item in results if item.status == DeliveryStatus.skipped)

        await self.tokens.touch(session, delivered)
        if invalid:
            removed = await self.tokens.delete_by_ids(session, invalid)
            logger.info("push-queue: removed %d invalid token(s) for entry %s", removed, entry.id)
        if failed:
            raise DispatchError(f"{len(failed)} of {len(recipients)} deliveries failed")
        if skipped:
            logger.warning("push-queue: entry %s skipped %d recipient(s) with no transport", entry.id, skipped)
        logger.debug("push-queue: entry %s delivered to %d device(s)", entry.id, len(delivered))
        return skipped


def build_push_worker(settings: Settings) -> PushQueueWorker:
    from push_service.db.session import AsyncSessionLocal
    from push_service.services.push_notifications import build_sender

    return PushQueueWorker(
        settings,
        session_factory=AsyncSessionLocal,
        queue=DeliveryQueue(settings),
        tokens=TokenStore(settings),
        sender=build_sender(settings),
    )
