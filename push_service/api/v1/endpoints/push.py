from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from push_service.api.deps import (
    ContentSourceDep,
    CurrentUserId,
    SessionDep,
    SubscriptionStoreDep,
    TokenStoreDep,
    resolve_identity,
)
from push_service.core.errors import PushServiceError, ValidationError
from push_service.schemas.identity import GuestIdentity, Target, UserIdentity
from push_service.schemas.push import (
    GUEST_ID_PATTERN,
    PushCreatedResponse,
    PushDeletedResponse,
    PushSubscriptionRequest,
    PushSubscriptionStatusResponse,
    PushTokenRegisterRequest,
    PushTokenRegisterResponse,
)
from push_service.services.content_source import ContentSource
from push_service.services.push_subscriptions import validate_target

router = APIRouter()


def _error_response(exc: PushServiceError, message: str) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=exc.status, detail={"code": exc.code, "message": exc.message})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": exc.code, "message": message},
    )


async def _validated_target(content_source: ContentSource, content_type: str, content_id: int) -> Target:
    try:
        return await validate_target(content_source, content_type=content_type, content_id=content_id)
    except ValidationError as exc:
        raise _error_response(exc, exc.message) from exc


@router.post("/tokens", response_model=PushTokenRegisterResponse, status_code=status.HTTP_201_CREATED)
async def register_push_token(
    session: SessionDep,
    user_id: CurrentUserId,
    tokens: TokenStoreDep,
    request: PushTokenRegisterRequest,
) -> PushTokenRegisterResponse:
    """Register a device token for the current user or guest.

    Registering a token that is already known moves it to the caller and
    keeps its uuid.
    """
    owner = await resolve_identity(session, user_id, request.guest_id)
    try:
        uuid = await tokens.register_or_update(
            session,
            owner=owner,
            service=request.service,
            token=request.token,
        )
    except PushServiceError as exc:
        raise _error_response(exc, "An error occurred") from exc
    return PushTokenRegisterResponse(uuid=uuid)


@router.delete("/tokens/{uuid}", response_model=PushDeletedResponse)
async def delete_push_token(
    uuid: str,
    session: SessionDep,
    user_id: CurrentUserId,
    tokens: TokenStoreDep,
    guest_id: Optional[str] = Query(default=None, pattern=GUEST_ID_PATTERN),
) -> PushDeletedResponse:
    owner = await resolve_identity(session, user_id, guest_id)
    try:
        await tokens.delete(session, uuid=uuid, owner=owner)
    except PushServiceError as exc:
        raise _error_response(exc, "Could not delete token") from exc
    return PushDeletedResponse()


@router.post("/subscriptions", response_model=PushCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    session: SessionDep,
    user_id: CurrentUserId,
    subscriptions: SubscriptionStoreDep,
    content_source: ContentSourceDep,
    request: PushSubscriptionRequest,
) -> PushCreatedResponse:
    target = await _validated_target(content_source, request.content_type, request.content_id)
    identity = await resolve_identity(session, user_id, request.guest_id)
    try:
        await subscriptions.subscribe(session, identity, target)
    except PushServiceError as exc:
        raise _error_response(exc, "Could not create subscription") from exc
    return PushCreatedResponse()


@router.delete("/subscriptions", response_model=PushDeletedResponse)
async def delete_subscription(
    session: SessionDep,
    user_id: CurrentUserId,
    subscriptions: SubscriptionStoreDep,
    content_source: ContentSourceDep,
    content_type: str = Query(min_length=1, max_length=64),
    content_id: int = Query(ge=1),
    guest_id: Optional[str] = Query(default=None, pattern=GUEST_ID_PATTERN),
) -> PushDeletedResponse:
    target = await _validated_target(content_source, content_type, content_id)
    identity = await resolve_identity(session, user_id, guest_id)
    try:
        await subscriptions.unsubscribe(session, identity, target)
    except PushServiceError as exc:
        raise _error_response(exc, "Could not delete subscription") from exc
    return PushDeletedResponse()


@router.get("/subscriptions/status", response_model=PushSubscriptionStatusResponse)
async def subscription_status(
    session: SessionDep,
    user_id: CurrentUserId,
    subscriptions: SubscriptionStoreDep,
    content_source: ContentSourceDep,
    content_type: str = Query(min_length=1, max_length=64),
    content_id: int = Query(ge=1),
    guest_id: Optional[str] = Query(default=None, pattern=GUEST_ID_PATTERN),
) -> PushSubscriptionStatusResponse:
    """Whether the caller, signed in or as a guest, follows the content."""
    entity_types = await content_source.get_entity_types()
    object_type = entity_types.get(content_type)
    if object_type is None:
        return PushSubscriptionStatusResponse(has_push_subscription=False)

    identities = []
    if user_id:
        identities.append(UserIdentity(id=user_id))
    if guest_id:
        identities.append(GuestIdentity(id=guest_id))
    found = await subscriptions.has_any_subscription(
        session,
        identities,
        Target(object_type=object_type, object_id=content_id),
    )
    return PushSubscriptionStatusResponse(has_push_subscription=found)
