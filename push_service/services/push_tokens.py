import logging
import uuid as uuid_lib
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import delete, func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.core.config import Settings
from push_service.core.errors import StorageWriteError
from push_service.models.push_token import PushServiceType, PushToken
from push_service.schemas.identity import GuestIdentity, Target, UserIdentity, owner_columns
from push_service.services import identity_migration
from push_service.services.push_matching import matching_tokens_statement, owned_by

logger = logging.getLogger(__name__)


class TokenStore:
    """Device token records and the token side of recipient resolution."""

    def __init__(self, settings: Settings) -> None:
        self.max_tokens_per_user = settings.PUSH_MAX_TOKENS_PER_USER

    async def register_or_update(
        self,
        session: AsyncSession,
        *,
        owner: UserIdentity | GuestIdentity,
        service: PushServiceType,
        token: str,
        uuid: Optional[str] = None,
    ) -> str:
        """Register a device token, or rebind an already known one to ``owner``.

        Returns the uuid of the stored row. A known (service, token) keeps its
        original uuid even when a different one is supplied.
        """
        existing = await self._rebind_existing(session, owner=owner, service=service, token=token)
        if existing is not None:
            return existing

        if isinstance(owner, UserIdentity):
            await self._evict_oldest_over_limit(session, owner.id)

        now = datetime.now(timezone.utc)
        record = PushToken(
            uuid=uuid or str(uuid_lib.uuid4()),
            service=service,
            token=token,
            created_at=now,
            last_active_at=now,
            **owner_columns(owner),
        )
        session.add(record)
        try:
            await session.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same token
            await session.rollback()
            existing = await self._rebind_existing(session, owner=owner, service=service, token=token)
            if existing is None:
                raise StorageWriteError("Could not register push token")
            return existing
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not register push token") from exc

        logger.debug("push-tokens: registered %s token %s...", service.value, token[:20])
        return record.uuid

    async def _rebind_existing(
        self,
        session: AsyncSession,
        *,
        owner: UserIdentity | GuestIdentity,
        service: PushServiceType,
        token: str,
    ) -> Optional[str]:
        stmt = select(PushToken).where(PushToken.service == service, PushToken.token == token)
        result = await session.exec(stmt)
        keep = result.first()
        if keep is None:
            return None

        try:
            for column, value in owner_columns(owner).items():
                setattr(keep, column, value)
            keep.last_active_at = datetime.now(timezone.utc)
            session.add(keep)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not update push token") from exc
        return keep.uuid

    async def count_for_user(self, session: AsyncSession, user_id: int) -> int:
        stmt = select(func.count()).select_from(PushToken).where(PushToken.user_id == user_id)
        result = await session.exec(stmt)
        return int(result.one())

    async def _evict_oldest_over_limit(self, session: AsyncSession, user_id: int) -> None:
        # One-in-one-out; not serialized against concurrent registrations
        if await self.count_for_user(session, user_id) < self.max_tokens_per_user:
            return
        stmt = (
            select(PushToken.id)
            .where(PushToken.user_id == user_id)
            .order_by(PushToken.id.asc())
            .limit(1)
        )
        result = await session.exec(stmt)
        oldest_id = result.first()
        if oldest_id is None:
            return
        try:
            await session.execute(delete(PushToken).where(PushToken.id == oldest_id))
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not evict push token") from exc
        logger.info("push-tokens: evicted token %s for user %s (limit %s)", oldest_id, user_id, self.max_tokens_per_user)

    async def tokens_for_targets(
        self,
        session: AsyncSession,
        targets: Iterable[Target],
        *,
        excluding_owner: Optional[UserIdentity | GuestIdentity] = None,
    ) -> List[PushToken]:
        """Distinct tokens whose owner is subscribed to any of ``targets``.

        Tokens owned by ``excluding_owner`` (usually the author of the content
        that triggered the notification) are left out.
        """
        targets = list(targets)
        if not targets:
            return []
        stmt = matching_tokens_statement(targets, excluding_owner).order_by(PushToken.id.asc())
        result = await session.exec(stmt)
        return list(result.all())

    async def list_for_owner(
        self,
        session: AsyncSession,
        owner: UserIdentity | GuestIdentity,
    ) -> List[PushToken]:
        stmt = select(PushToken).where(owned_by(PushToken, owner)).order_by(PushToken.id.asc())
        result = await session.exec(stmt)
        return list(result.all())

    async def delete(
        self,
        session: AsyncSession,
        *,
        uuid: str,
        owner: UserIdentity | GuestIdentity,
    ) -> bool:
        """Delete a token owned by ``owner``.

        Returns True if a token was deleted; an unknown uuid or a token owned
        by someone else is not an error.
        """
        stmt = delete(PushToken).where(PushToken.uuid == uuid, owned_by(PushToken, owner))
        return await self._delete(session, stmt) > 0

    async def delete_by_guest(self, session: AsyncSession, guest_id: str) -> int:
        """Delete all tokens of a guest session. Returns the number removed."""
        stmt = delete(PushToken).where(PushToken.guest_id == guest_id)
        return await self._delete(session, stmt)

    async def delete_by_ids(self, session: AsyncSession, ids: Iterable[int]) -> int:
        """Delete tokens by id, e.g. after the provider rejected them."""
        ids = sorted({int(token_id) for token_id in ids if int(token_id) > 0})
        if not ids:
            return 0
        stmt = delete(PushToken).where(PushToken.id.in_(ids))
        return await self._delete(session, stmt)

    async def _delete(self, session: AsyncSession, stmt) -> int:
        try:
            result = await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StorageWriteError("Could not delete push token") from exc
        return result.rowcount or 0

    async def touch(self, session: AsyncSession, ids: Iterable[int]) -> None:
        """Track successful delivery by refreshing last_active_at.

        Best effort: ids that no longer exist are ignored and storage failures
        are logged rather than raised.
        """
        ids = sorted({int(token_id) for token_id in ids})
        if not ids:
            return
        stmt = (
            update(PushToken)
            .where(PushToken.id.in_(ids))
            .values(last_active_at=datetime.now(timezone.utc))
        )
        try:
            await session.execute(stmt)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            logger.warning("push-tokens: failed to refresh last_active_at for %d token(s): %s", len(ids), exc)

    async def migrate(self, session: AsyncSession, *, guest_id: str, user_id: int) -> int:
        """Move a guest's tokens to the user it authenticated as."""
        return await identity_migration.migrate_guest_to_user(
            session, guest_id=guest_id, user_id=user_id, models=(PushToken,)
        )
