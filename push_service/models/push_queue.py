from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlmodel import Field, SQLModel


class PushQueueStatus(str, Enum):
    pending = "pending"
    claimed = "claimed"


class PushQueueEntry(SQLModel, table=True):
    """Durable work item holding one serialized notification payload.

    Entries move pending -> claimed -> deleted. A claimed entry whose worker
    disappeared is moved back to pending by the stale-claim sweep.
    """
    __tablename__ = "push_queue"
    __table_args__ = (
        Index("ix_push_queue_status_created_at", "status", "created_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    # JSON document, opaque to the queue
    payload: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(
        default=PushQueueStatus.pending.value,
        sa_column=Column(String(16), nullable=False, server_default=PushQueueStatus.pending.value),
    )
    attempts: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default="0"),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    claimed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
