"""Import all models for Alembic or metadata creation."""

from push_service.models.push_queue import PushQueueEntry
from push_service.models.push_subscription import PushSubscription
from push_service.models.push_token import PushToken

__all__ = [
    "PushToken",
    "PushSubscription",
    "PushQueueEntry",
]
