"""Transfer guest-owned push rows to a user once the guest authenticates."""

import logging
from typing import Sequence

from sqlalchemy import and_, delete, exists, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased
from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.core.errors import MigrationError
from push_service.models.push_subscription import PushSubscription
from push_service.models.push_token import PushToken

logger = logging.getLogger(__name__)

# Natural key of each migratable table, excluding the owner columns
NATURAL_KEYS: dict[type, tuple[str, ...]] = {
    PushToken: ("service", "token"),
    PushSubscription: ("object_type", "object_id"),
}


async def _reassign_guest_rows(
    session: AsyncSession,
    model: type,
    *,
    guest_id: str,
    user_id: int,
) -> int:
    """Move one table's guest rows to the user without committing.

    Guest rows whose natural key the user already owns are discarded so the
    user's existing row wins; everything else is rebound.
    """
    user_row = aliased(model)
    key_match = [getattr(user_row, column) == getattr(model, column) for column in NATURAL_KEYS[model]]
    discard_stmt = (
        delete(model)
        .where(
            model.guest_id == guest_id,
            exists().where(user_row.user_id == user_id, and_(*key_match)),
        )
        .execution_options(synchronize_session=False)
    )
    discarded = await session.execute(discard_stmt)

    reassign_stmt = (
        update(model)
        .where(model.guest_id == guest_id)
        .values(user_id=user_id, guest_id=None)
        .execution_options(synchronize_session=False)
    )
    reassigned = await session.execute(reassign_stmt)

    if discarded.rowcount:
        logger.debug(
            "migration: discarded %d %s row(s) of guest %s already owned by user %s",
            discarded.rowcount,
            model.__tablename__,
            guest_id,
            user_id,
        )
    return reassigned.rowcount or 0


async def migrate_guest_to_user(
    session: AsyncSession,
    *,
    guest_id: str,
    user_id: int,
    models: Sequence[type] = (PushToken, PushSubscription),
) -> int:
    """Atomically reassign every row owned by ``guest_id`` to ``user_id``.

    Either all tables are migrated or none are. Returns the number of rows
    reassigned; calling again with the same pair finds nothing and returns 0.
    """
    if not guest_id or user_id <= 0:
        return 0
    try:
        total = 0
        for model in models:
            total += await _reassign_guest_rows(session, model, guest_id=guest_id, user_id=user_id)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        logger.error("migration: guest %s -> user %s rolled back: %s", guest_id, user_id, exc)
        raise MigrationError() from exc
    if total:
        logger.info("migration: moved %d row(s) from guest %s to user %s", total, guest_id, user_id)
    return total
