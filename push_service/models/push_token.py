import uuid as uuid_lib
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, UniqueConstraint
from sqlmodel import Enum as SQLEnum, Field, SQLModel

from push_service.schemas.identity import GuestIdentity, UserIdentity, identity_from_columns


class PushServiceType(str, Enum):
    """Push transports a device token can belong to."""

    fcm = "fcm"
    apns = "apns"


class PushToken(SQLModel, table=True):
    """Device tokens able to receive push notifications.

    A token is owned by exactly one of a user or a guest session. The same
    provider token is never stored twice: re-registration rebinds the
    existing row instead.
    """
    __tablename__ = "push_tokens"
    __table_args__ = (
        UniqueConstraint("service", "token", name="uq_push_tokens_service_token"),
        CheckConstraint(
            "(user_id IS NULL) <> (guest_id IS NULL)",
            name="ck_push_tokens_single_owner",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    # Client-facing identifier, used by devices to unregister
    uuid: str = Field(
        default_factory=lambda: str(uuid_lib.uuid4()),
        sa_column=Column(String(36), nullable=False, unique=True),
    )
    user_id: Optional[int] = Field(
        default=None,
        sa_column=Column(Integer, nullable=True, index=True),
    )
    guest_id: Optional[str] = Field(
        default=None,
        sa_column=Column(String(64), nullable=True, index=True),
    )
    service: PushServiceType = Field(
        sa_column=Column(
            SQLEnum(PushServiceType, name="push_service_type", native_enum=False, length=16),
            nullable=False,
        ),
    )
    # FCM registration token or APNS device token
    token: str = Field(
        sa_column=Column(String(255), nullable=False),
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    last_active_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def owner(self) -> UserIdentity | GuestIdentity:
        return identity_from_columns(self.user_id, self.guest_id)
