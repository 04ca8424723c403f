"""
Unit tests for the subscription store and target validation.
"""

import pytest
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.core.errors import ValidationError
from push_service.models.push_subscription import PushSubscription
from push_service.schemas.identity import GuestIdentity, Target, UserIdentity
from push_service.services.push_subscriptions import SubscriptionStore, validate_target
from push_service.testing import FakeContentSource, create_push_token, create_subscription

ALICE = UserIdentity(id=1)
GUEST = GuestIdentity(id="guest-abc")
POST_1 = Target(object_type="post", object_id=1)


async def _subscription_count(session: AsyncSession) -> int:
    result = await session.exec(select(PushSubscription))
    return len(result.all())


@pytest.mark.unit
@pytest.mark.service
async def test_subscribe_is_idempotent(session: AsyncSession):
    store = SubscriptionStore()

    await store.subscribe(session, ALICE, POST_1)
    await store.subscribe(session, ALICE, POST_1)

    assert await _subscription_count(session) == 1
    assert await store.has_subscription(session, ALICE, POST_1) is True


@pytest.mark.unit
@pytest.mark.service
async def test_user_and_guest_subscriptions_are_separate(session: AsyncSession):
    store = SubscriptionStore()

    await store.subscribe(session, GUEST, POST_1)

    assert await store.has_subscription(session, GUEST, POST_1) is True
    assert await store.has_subscription(session, ALICE, POST_1) is False
    assert await store.has_any_subscription(session, [ALICE, GUEST], POST_1) is True
    assert await store.has_any_subscription(session, [], POST_1) is False


@pytest.mark.unit
@pytest.mark.service
async def test_unsubscribe_missing_is_not_an_error(session: AsyncSession):
    store = SubscriptionStore()
    await store.subscribe(session, ALICE, POST_1)

    await store.unsubscribe(session, ALICE, POST_1)
    await store.unsubscribe(session, ALICE, POST_1)

    assert await store.has_subscription(session, ALICE, POST_1) is False


@pytest.mark.unit
@pytest.mark.service
async def test_count_subscribers_counts_distinct_tokens(session: AsyncSession):
    store = SubscriptionStore()
    await create_push_token(session, ALICE)
    await create_push_token(session, ALICE)
    await create_push_token(session, GUEST)
    await create_subscription(session, ALICE, object_type="post", object_id=1)
    await create_subscription(session, ALICE, object_type="forum", object_id=3)
    await create_subscription(session, GUEST, object_type="forum", object_id=3)

    targets = [POST_1, Target(object_type="forum", object_id=3)]
    assert await store.count_subscribers(session, targets) == 3
    assert await store.count_subscribers(session, [POST_1]) == 2
    assert await store.count_subscribers(session, []) == 0


@pytest.mark.unit
@pytest.mark.service
async def test_subscribers_without_tokens_are_not_counted(session: AsyncSession):
    store = SubscriptionStore()
    await create_subscription(session, ALICE)

    assert await store.count_subscribers(session, [POST_1]) == 0


@pytest.mark.unit
async def test_validate_target_returns_canonical_type():
    source = FakeContentSource()
    source.add("section", 4)

    target = await validate_target(source, content_type="section", content_id=4)

    assert target == Target(object_type="forum", object_id=4)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("content_type", "content_id", "code", "status"),
    [
        ("post", 0, "invalid_params", 400),
        ("video", 1, "unknown_content_type", 400),
        ("post", 99, "does_not_exist", 404),
        ("comment", 1, "invalid_content_type", 400),
        ("post", 2, "no_permission", 403),
    ],
)
async def test_validate_target_errors(content_type, content_id, code, status):
    source = FakeContentSource()
    source.add("post", 1)
    source.add("post", 2, visible=False)
    # A comment lookup that resolves to a post
    source.contents[("comment", 1)] = source.contents[("post", 1)]

    with pytest.raises(ValidationError) as exc_info:
        await validate_target(source, content_type=content_type, content_id=content_id)

    assert exc_info.value.code == code
    assert exc_info.value.status == status
