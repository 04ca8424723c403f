"""Create push_tokens, push_subscriptions and push_queue tables

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "push_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("uuid", sa.String(36), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("guest_id", sa.String(64), nullable=True),
        sa.Column("service", sa.String(16), nullable=False),
        sa.Column("token", sa.String(255), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "last_active_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("uuid"),
        sa.UniqueConstraint("service", "token", name="uq_push_tokens_service_token"),
        sa.CheckConstraint(
            "(user_id IS NULL) <> (guest_id IS NULL)",
            name="ck_push_tokens_single_owner",
        ),
    )
    op.create_index("ix_push_tokens_user_id", "push_tokens", ["user_id"])
    op.create_index("ix_push_tokens_guest_id", "push_tokens", ["guest_id"])

    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("guest_id", sa.String(64), nullable=True),
        sa.Column("object_type", sa.String(64), nullable=False),
        sa.Column("object_id", sa.Integer(), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "object_type", "object_id", name="uq_push_subscriptions_user_object"
        ),
        sa.UniqueConstraint(
            "guest_id", "object_type", "object_id", name="uq_push_subscriptions_guest_object"
        ),
        sa.CheckConstraint(
            "(user_id IS NULL) <> (guest_id IS NULL)",
            name="ck_push_subscriptions_single_owner",
        ),
    )
    op.create_index("ix_push_subscriptions_user_id", "push_subscriptions", ["user_id"])
    op.create_index("ix_push_subscriptions_guest_id", "push_subscriptions", ["guest_id"])
    op.create_index("ix_push_subscriptions_object", "push_subscriptions", ["object_type", "object_id"])

    op.create_table(
        "push_queue",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    # Claim scans pending entries oldest first
    op.create_index("ix_push_queue_status_created_at", "push_queue", ["status", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_push_queue_status_created_at", "push_queue")
    op.drop_table("push_queue")

    op.drop_index("ix_push_subscriptions_object", "push_subscriptions")
    op.drop_index("ix_push_subscriptions_guest_id", "push_subscriptions")
    op.drop_index("ix_push_subscriptions_user_id", "push_subscriptions")
    op.drop_table("push_subscriptions")

    op.drop_index("ix_push_tokens_guest_id", "push_tokens")
    op.drop_index("ix_push_tokens_user_id", "push_tokens")
    op.drop_table("push_tokens")
