import logging
from typing import Iterable

from sqlalchemy import delete, distinct, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.core.errors import StorageWriteError, ValidationError
from push_service.models.push_subscription import PushSubscription
from push_service.models.push_token import PushToken
from push_service.schemas.identity import GuestIdentity, Target, UserIdentity, owner_columns
from push_service.services import identity_migration
from push_service.services.content_source import ContentSource
from push_service.services.push_matching import owned_by, same_owner_clause, targets_clause

logger = logging.getLogger(__name__)


class SubscriptionStore:
    """Who follows which content."""

    def _subscription_filter(self, identity: UserIdentity | GuestIdentity, target: Target):
        return (
            owned_by(PushSubscription, identity),
            PushSubscription.object_type == target.object_type,
            PushSubscription.object_id == target.object_id,
        )

    async def has_subscription(
        self,
        session: AsyncSession,
        identity: UserIdentity | GuestIdentity,
        target: Target,
    ) -> bool:
        stmt = (
            select(func.count())
            .select_from(PushSubscription)
            .where(*self._subscription_filter(identity, target))
        )
        result = await session.exec(stmt)
        return int(result.one()) > 0

    async def has_any_subscription(
        self,
        session: AsyncSession,
        identities: Iterable[UserIdentity | GuestIdentity],
        target: Target,
    ) -> bool:
        """True when any of ``identities`` (e.g. current user and guest) follows ``target``."""
        owners = [owned_by(PushSubscription, identity) for identity in identities]
        if not owners:
            return False
        stmt = (
            select(func.count())
            .select_from(PushSubscription)
            .where(
                or_(*owners),
                PushSubscription.object_type == target.object_type,
                PushSubscription.object_id == target.object_id,
            )
        )
        result = await session.exec(stmt)
        return int(result.one()) > 0

    async def subscribe(
        self,
        session: AsyncSession,
        identity: UserIdentity | GuestIdentity,
        target: Target,
    ) -> None:
        """Subscribe ``identity`` to ``target``. Subscribing twice is a no-op."""
        if await self.has_subscription(session, identity, target):
            return
        session.add(
            PushSubscription(
                object_type=target.object_type,
                object_id=target.object_id,
                **owner_columns(identity),
            )
        )
        try:
            await session.commit()
        except IntegrityError:
            # A concurrent request created the same subscription first
            await session.rollback()
            if not await self.has_subscription(session, identity, target):
                raise StorageWriteError("Could not create subscription")
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not create subscription") from exc
        logger.debug(
            "push-subscriptions: %s %s subscribed to %s %s",
            identity.kind,
            identity.id,
            target.object_type,
            target.object_id,
        )

    async def unsubscribe(
        self,
        session: AsyncSession,
        identity: UserIdentity | GuestIdentity,
        target: Target,
    ) -> None:
        """Remove a subscription; a missing subscription is not an error."""
        stmt = delete(PushSubscription).where(*self._subscription_filter(identity, target))
        try:
            await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not delete subscription") from exc

    async def count_subscribers(self, session: AsyncSession, targets: Iterable[Target]) -> int:
        """Count distinct device tokens subscribed to any of ``targets``."""
        targets = list(targets)
        if not targets:
            return 0
        stmt = (
            select(func.count(distinct(PushToken.id)))
            .select_from(PushSubscription)
            .join(PushToken, same_owner_clause())
            .where(targets_clause(targets))
        )
        result = await session.exec(stmt)
        return int(result.one())

    async def migrate(self, session: AsyncSession, *, guest_id: str, user_id: int) -> int:
        """Move a guest's subscriptions to the user it authenticated as."""
        return await identity_migration.migrate_guest_to_user(
            session, guest_id=guest_id, user_id=user_id, models=(PushSubscription,)
        )


async def validate_target(
    content_source: ContentSource,
    *,
    content_type: str,
    content_id: int,
) -> Target:
    """Check that content exists and is visible before subscribing to it.

    Returns the target keyed by the canonical content type. Raises
    ValidationError carrying the HTTP status the API layer should use.
    """
    if content_id <= 0:
        raise ValidationError("invalid_params", "Invalid parameters", 400)

    entity_types = await content_source.get_entity_types()
    object_type = entity_types.get(content_type)
    if object_type is None:
        raise ValidationError("unknown_content_type", "Unknown content type", 400)

    entity = await content_source.get_content(content_type, content_id)
    if entity is None:
        raise ValidationError("does_not_exist", "Content does not exist", 404)

    if await content_source.get_content_type(entity) != content_type:
        raise ValidationError("invalid_content_type", "Content type does not match", 400)

    if not await content_source.current_user_can("view", content_type, content_id):
        raise ValidationError("no_permission", "No permission to view content", 403)

    return Target(object_type=object_type, object_id=content_id)
