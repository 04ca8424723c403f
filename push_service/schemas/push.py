from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from push_service.core.config import settings
from push_service.models.push_token import PushServiceType
from push_service.schemas.identity import Identity, Target

GUEST_ID_PATTERN = r"^[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}$"


class PushTokenRegisterRequest(BaseModel):
    """Request body for registering a device push token."""

    service: PushServiceType
    token: str = Field(
        min_length=settings.PUSH_TOKEN_MIN_LENGTH,
        max_length=settings.PUSH_TOKEN_MAX_LENGTH,
    )
    guest_id: Optional[str] = Field(default=None, pattern=GUEST_ID_PATTERN)


class PushTokenRegisterResponse(BaseModel):
    model_config = ConfigDict(json_schema_serialization_defaults_required=True)

    uuid: str


class PushSubscriptionRequest(BaseModel):
    """Request body for subscribing to a piece of content."""

    content_type: str = Field(min_length=1, max_length=64)
    content_id: int = Field(ge=1)
    guest_id: Optional[str] = Field(default=None, pattern=GUEST_ID_PATTERN)


class PushCreatedResponse(BaseModel):
    model_config = ConfigDict(json_schema_serialization_defaults_required=True)

    created: bool = True


class PushDeletedResponse(BaseModel):
    model_config = ConfigDict(json_schema_serialization_defaults_required=True)

    deleted: bool = True


class PushSubscriptionStatusResponse(BaseModel):
    model_config = ConfigDict(json_schema_serialization_defaults_required=True)

    has_push_subscription: bool


class MessageEnvelope(BaseModel):
    """Rendered message handed to the notification sender."""
    model_config = ConfigDict(extra="allow")

    title: str
    subtitle: Optional[str] = None
    body: str
    url: str
    image_url: Optional[str] = None


class NotificationPayload(BaseModel):
    """Queue payload. Recipients are resolved from ``targets`` at delivery time.

    Unknown fields are kept so older workers tolerate payloads written by newer
    producers.
    """
    model_config = ConfigDict(extra="allow")

    content_type: str
    content_id: int
    targets: list[Target]
    author: Optional[Identity] = None
    message: MessageEnvelope
