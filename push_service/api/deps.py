import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.core.config import Settings, get_settings
from push_service.core.errors import MigrationError
from push_service.db.session import get_session
from push_service.schemas.identity import GuestIdentity, UserIdentity
from push_service.services import identity_migration
from push_service.services.content_source import ContentSource
from push_service.services.push_subscriptions import SubscriptionStore
from push_service.services.push_tokens import TokenStore

logger = logging.getLogger(__name__)

SessionDep = Annotated[AsyncSession, Depends(get_session)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_current_user_id(request: Request) -> Optional[int]:
    """Authenticated user id set by the host's auth middleware, if any."""
    user_id = getattr(request.state, "user_id", None)
    if isinstance(user_id, int) and user_id > 0:
        return user_id
    return None


def get_content_source(request: Request) -> ContentSource:
    content_source = getattr(request.app.state, "content_source", None)
    if content_source is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Content source not configured",
        )
    return content_source


def get_token_store(settings: SettingsDep) -> TokenStore:
    return TokenStore(settings)


def get_subscription_store() -> SubscriptionStore:
    return SubscriptionStore()


CurrentUserId = Annotated[Optional[int], Depends(get_current_user_id)]
ContentSourceDep = Annotated[ContentSource, Depends(get_content_source)]
TokenStoreDep = Annotated[TokenStore, Depends(get_token_store)]
SubscriptionStoreDep = Annotated[SubscriptionStore, Depends(get_subscription_store)]


async def resolve_identity(
    session: AsyncSession,
    user_id: Optional[int],
    guest_id: Optional[str],
) -> UserIdentity | GuestIdentity:
    """Identity a push request acts as.

    A signed-in request that still carries its guest id takes over the
    guest's tokens and subscriptions first. A failed takeover leaves the
    guest rows in place for the next request to retry.
    """
    if user_id:
        if guest_id:
            try:
                await identity_migration.migrate_guest_to_user(session, guest_id=guest_id, user_id=user_id)
            except MigrationError:
                logger.warning("push: could not migrate guest %s to user %s", guest_id, user_id)
        return UserIdentity(id=user_id)
    if not guest_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "missing_guest_id", "message": "Guest ID is required"},
        )
    return GuestIdentity(id=guest_id)
