from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, UniqueConstraint
from sqlmodel import Field, SQLModel


class PushSubscription(SQLModel, table=True):
    """A user or guest following a piece of content for push notifications."""
    __tablename__ = "push_subscriptions"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "object_type", "object_id", name="uq_push_subscriptions_user_object"
        ),
        UniqueConstraint(
            "guest_id", "object_type", "object_id", name="uq_push_subscriptions_guest_object"
        ),
        CheckConstraint(
            "(user_id IS NULL) <> (guest_id IS NULL)",
            name="ck_push_subscriptions_single_owner",
        ),
        Index("ix_push_subscriptions_object", "object_type", "object_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, nullable=True, index=True),
    )
    guest_id: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), nullable=True, index=True),
    )
    # Canonical content type as reported by the content source
    object_type: str = Field(sa_column=Column(String(64), nullable=False))
    object_id: int = Field(sa_column=Column(Integer, nullable=False))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
