"""
Integration tests for push endpoints.

Tests the push API endpoints at /api/v1/push including:
- Registering and deleting device tokens as user or guest
- Creating, deleting and querying subscriptions
- Migrating guest data when a signed-in request carries its guest id
"""

import pytest
from httpx import AsyncClient
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.models.push_subscription import PushSubscription
from push_service.models.push_token import PushToken
from push_service.schemas.identity import GuestIdentity, UserIdentity
from push_service.testing import (
    FakeContentSource,
    create_push_token,
    create_subscription,
    make_device_token,
    user_headers,
)

BASE = "/api/v1/push"
GUEST_ID = "6f1c2a3b-4d5e-4f60-8a7b-9c0d1e2f3a4b"


async def _rows(session: AsyncSession, model):
    session.expire_all()
    result = await session.exec(select(model).order_by(model.id))
    return list(result.all())


@pytest.mark.integration
async def test_register_token_as_user(client: AsyncClient, session: AsyncSession):
    response = await client.post(
        f"{BASE}/tokens",
        json={"service": "fcm", "token": make_device_token()},
        headers=user_headers(3),
    )

    assert response.status_code == 201
    tokens = await _rows(session, PushToken)
    assert response.json() == {"uuid": tokens[0].uuid}
    assert tokens[0].user_id == 3


@pytest.mark.integration
async def test_register_token_as_guest(client: AsyncClient, session: AsyncSession):
    response = await client.post(
        f"{BASE}/tokens",
        json={"service": "fcm", "token": make_device_token(), "guest_id": GUEST_ID},
    )

    assert response.status_code == 201
    tokens = await _rows(session, PushToken)
    assert tokens[0].guest_id == GUEST_ID


@pytest.mark.integration
async def test_register_token_requires_guest_id(client: AsyncClient):
    response = await client.post(f"{BASE}/tokens", json={"service": "fcm", "token": make_device_token()})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "missing_guest_id"


@pytest.mark.integration
@pytest.mark.parametrize(
    "body",
    [
        {"service": "sms", "token": "x" * 40},
        {"service": "fcm", "token": "too-short"},
        {"service": "fcm", "token": "x" * 40, "guest_id": "not-a-uuid"},
    ],
)
async def test_register_token_validates_body(client: AsyncClient, body):
    response = await client.post(f"{BASE}/tokens", json=body)

    assert response.status_code == 422


@pytest.mark.integration
async def test_signed_in_request_migrates_guest(client: AsyncClient, session: AsyncSession):
    await create_push_token(session, GuestIdentity(id=GUEST_ID))
    await create_subscription(session, GuestIdentity(id=GUEST_ID), object_type="post", object_id=1)

    response = await client.post(
        f"{BASE}/tokens",
        json={"service": "fcm", "token": make_device_token(), "guest_id": GUEST_ID},
        headers=user_headers(9),
    )

    assert response.status_code == 201
    tokens = await _rows(session, PushToken)
    assert [(row.user_id, row.guest_id) for row in tokens] == [(9, None), (9, None)]
    subscriptions = await _rows(session, PushSubscription)
    assert subscriptions[0].user_id == 9


@pytest.mark.integration
async def test_delete_token(client: AsyncClient, session: AsyncSession):
    token = await create_push_token(session, UserIdentity(id=3))

    other = await client.delete(f"{BASE}/tokens/{token.uuid}", headers=user_headers(4))
    own = await client.delete(f"{BASE}/tokens/{token.uuid}", headers=user_headers(3))

    assert other.status_code == 200
    assert own.status_code == 200
    assert own.json() == {"deleted": True}
    assert await _rows(session, PushToken) == []


@pytest.mark.integration
async def test_delete_guest_token_requires_guest_id(client: AsyncClient, session: AsyncSession):
    token = await create_push_token(session, GuestIdentity(id=GUEST_ID))

    missing = await client.delete(f"{BASE}/tokens/{token.uuid}")
    deleted = await client.delete(f"{BASE}/tokens/{token.uuid}", params={"guest_id": GUEST_ID})

    assert missing.status_code == 400
    assert deleted.status_code == 200
    assert await _rows(session, PushToken) == []


@pytest.mark.integration
async def test_subscribe_and_query_status(
    client: AsyncClient,
    session: AsyncSession,
    content_source: FakeContentSource,
):
    content_source.add("section", 4)
    params = {"content_type": "section", "content_id": 4}

    before = await client.get(f"{BASE}/subscriptions/status", params=params, headers=user_headers(3))
    created = await client.post(
        f"{BASE}/subscriptions",
        json={"content_type": "section", "content_id": 4},
        headers=user_headers(3),
    )
    created_again = await client.post(
        f"{BASE}/subscriptions",
        json={"content_type": "section", "content_id": 4},
        headers=user_headers(3),
    )
    after = await client.get(f"{BASE}/subscriptions/status", params=params, headers=user_headers(3))

    assert before.json() == {"has_push_subscription": False}
    assert created.status_code == 201
    assert created.json() == {"created": True}
    assert created_again.status_code == 201
    assert after.json() == {"has_push_subscription": True}
    subscriptions = await _rows(session, PushSubscription)
    assert [(row.object_type, row.object_id) for row in subscriptions] == [("forum", 4)]


@pytest.mark.integration
async def test_status_checks_user_and_guest(
    client: AsyncClient,
    session: AsyncSession,
    content_source: FakeContentSource,
):
    content_source.add("post", 1)
    await create_subscription(session, GuestIdentity(id=GUEST_ID), object_type="post", object_id=1)
    params = {"content_type": "post", "content_id": 1}

    as_user = await client.get(f"{BASE}/subscriptions/status", params=params, headers=user_headers(3))
    with_guest = await client.get(
        f"{BASE}/subscriptions/status",
        params={**params, "guest_id": GUEST_ID},
        headers=user_headers(3),
    )
    unknown_type = await client.get(
        f"{BASE}/subscriptions/status",
        params={"content_type": "video", "content_id": 1},
    )

    assert as_user.json() == {"has_push_subscription": False}
    assert with_guest.json() == {"has_push_subscription": True}
    assert unknown_type.json() == {"has_push_subscription": False}


@pytest.mark.integration
@pytest.mark.parametrize(
    ("content_type", "content_id", "status_code", "code"),
    [
        ("video", 1, 400, "unknown_content_type"),
        ("post", 99, 404, "does_not_exist"),
        ("post", 2, 403, "no_permission"),
    ],
)
async def test_subscribe_rejects_invalid_content(
    client: AsyncClient,
    content_source: FakeContentSource,
    content_type,
    content_id,
    status_code,
    code,
):
    content_source.add("post", 2, visible=False)

    response = await client.post(
        f"{BASE}/subscriptions",
        json={"content_type": content_type, "content_id": content_id, "guest_id": GUEST_ID},
    )

    assert response.status_code == status_code
    assert response.json()["detail"]["code"] == code


@pytest.mark.integration
async def test_unsubscribe_as_guest(
    client: AsyncClient,
    session: AsyncSession,
    content_source: FakeContentSource,
):
    content_source.add("post", 1)
    await create_subscription(session, GuestIdentity(id=GUEST_ID), object_type="post", object_id=1)

    response = await client.delete(
        f"{BASE}/subscriptions",
        params={"content_type": "post", "content_id": 1, "guest_id": GUEST_ID},
    )

    assert response.status_code == 200
    assert response.json() == {"deleted": True}
    assert await _rows(session, PushSubscription) == []


@pytest.mark.integration
async def test_unsubscribe_requires_identity(client: AsyncClient, content_source: FakeContentSource):
    content_source.add("post", 1)

    response = await client.delete(f"{BASE}/subscriptions", params={"content_type": "post", "content_id": 1})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "missing_guest_id"
