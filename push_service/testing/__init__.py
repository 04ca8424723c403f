"""
Shared test utilities and factories.

Re-exports all factory functions for convenient imports:
    from push_service.testing import create_push_token, create_subscription
"""

from push_service.testing.factories import (
    TEST_USER_HEADER,
    FakeContent,
    FakeContentSource,
    create_push_token,
    create_queue_entry,
    create_subscription,
    make_device_token,
    user_headers,
)

__all__ = [
    "TEST_USER_HEADER",
    "FakeContent",
    "FakeContentSource",
    "create_push_token",
    "create_queue_entry",
    "create_subscription",
    "make_device_token",
    "user_headers",
]
