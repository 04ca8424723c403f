from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from pydantic import BaseModel
from sqlalchemy import delete, func, insert, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.core.config import Settings
from push_service.core.errors import StorageWriteError
from push_service.models.push_queue import PushQueueEntry, PushQueueStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimedEntry:
    """A queue entry held exclusively by the worker that claimed it."""

    id: int
    payload: str
    created_at: datetime
    attempts: int

    def data(self) -> Any:
        return json.loads(self.payload)


def _serialize(payload: BaseModel | Mapping[str, Any] | str) -> str:
    if isinstance(payload, BaseModel):
        return payload.model_dump_json()
    if isinstance(payload, str):
        return payload
    return json.dumps(payload)


class DeliveryQueue:
    """Durable, at-least-once queue of serialized notification payloads.

    Several workers may poll the same table: claiming is a single
    UPDATE ... RETURNING over rows locked with SKIP LOCKED, so no entry is
    handed to two workers.
    """

    def __init__(self, settings: Settings) -> None:
        self.reclaim_to_pending = settings.PUSH_QUEUE_RECLAIM_TO_PENDING

    async def enqueue(
        self,
        session: AsyncSession,
        payload: BaseModel | Mapping[str, Any] | str,
    ) -> int:
        """Insert a pending entry and return its id."""
        stmt = (
            insert(PushQueueEntry)
            .values(
                payload=_serialize(payload),
                status=PushQueueStatus.pending.value,
                attempts=0,
                created_at=datetime.now(timezone.utc),
            )
            .returning(PushQueueEntry.id)
        )
        try:
            result = await session.execute(stmt)
            entry_id = result.scalar_one()
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not enqueue notification") from exc
        logger.debug("push-queue: enqueued entry %s", entry_id)
        return entry_id

    async def claim_batch(self, session: AsyncSession, max_n: int) -> list[ClaimedEntry]:
        """Claim up to ``max_n`` of the oldest pending entries.

        Selection and the pending -> claimed transition happen in one
        statement; rows locked by a concurrent claim are skipped, not waited on.
        """
        if max_n <= 0:
            return []
        now = datetime.now(timezone.utc)
        claimable = (
            select(PushQueueEntry.id)
            .where(PushQueueEntry.status == PushQueueStatus.pending.value)
            .order_by(PushQueueEntry.created_at.asc(), PushQueueEntry.id.asc())
            .limit(max_n)
            .with_for_update(skip_locked=True)
            .scalar_subquery()
        )
        stmt = (
            update(PushQueueEntry)
            .where(
                PushQueueEntry.id.in_(claimable),
                PushQueueEntry.status == PushQueueStatus.pending.value,
            )
            .values(
                status=PushQueueStatus.claimed.value,
                claimed_at=now,
                attempts=PushQueueEntry.attempts + 1,
            )
            .returning(
                PushQueueEntry.id,
                PushQueueEntry.payload,
                PushQueueEntry.created_at,
                PushQueueEntry.attempts,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = await session.execute(stmt)
            rows = result.all()
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not claim queue entries") from exc

        entries = [
            ClaimedEntry(id=row.id, payload=row.payload, created_at=row.created_at, attempts=row.attempts)
            for row in rows
        ]
        # RETURNING order is unspecified
        entries.sort(key=lambda entry: (entry.created_at, entry.id))
        return entries

    async def complete(self, session: AsyncSession, entry_id: int) -> None:
        """Delete a processed entry. Unknown ids are ignored."""
        stmt = (
            delete(PushQueueEntry)
            .where(PushQueueEntry.id == entry_id)
            .execution_options(synchronize_session=False)
        )
        try:
            await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not delete queue entry") from exc

    async def reclaim_stale(
        self,
        session: AsyncSession,
        older_than: timedelta,
        *,
        now: datetime | None = None,
    ) -> int:
        """Recover entries whose worker held the claim longer than ``older_than``.

        Entries go back to pending, or are deleted when reclaiming is disabled.
        Returns the number of entries affected.
        """
        cutoff = (now or datetime.now(timezone.utc)) - older_than
        stale = (
            PushQueueEntry.status == PushQueueStatus.claimed.value,
            PushQueueEntry.claimed_at < cutoff,
        )
        if self.reclaim_to_pending:
            stmt = (
                update(PushQueueEntry)
                .where(*stale)
                .values(status=PushQueueStatus.pending.value, claimed_at=None)
            )
        else:
            stmt = delete(PushQueueEntry).where(*stale)
        stmt = stmt.execution_options(synchronize_session=False)
        try:
            result = await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not reclaim stale queue entries") from exc
        count = result.rowcount or 0
        if count:
            action = "returned to pending" if self.reclaim_to_pending else "deleted"
            logger.warning("push-queue: %d stale claimed entries %s", count, action)
        return count

    async def pending_count(self, session: AsyncSession) -> int:
        stmt = (
            select(func.count())
            .select_from(PushQueueEntry)
            .where(PushQueueEntry.status == PushQueueStatus.pending.value)
        )
        result = await session.exec(stmt)
        return int(result.one())
