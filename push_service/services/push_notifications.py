import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from push_service.core.config import Settings
from push_service.models.push_token import PushServiceType
from push_service.schemas.push import MessageEnvelope

logger = logging.getLogger(__name__)

# FCM API endpoint
FCM_API_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

# OAuth2 scopes required for FCM
FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]


class DeliveryStatus(str, Enum):
    delivered = "delivered"
    # Transient failure, the queue entry should be retried
    failed = "failed"
    # Provider rejected the token for good, it should be deleted
    invalid = "invalid"
    # No transport configured for the token's service
    skipped = "skipped"


@dataclass(frozen=True)
class PushRecipient:
    token_id: int
    service: PushServiceType
    token: str


@dataclass(frozen=True)
class DeliveryResult:
    token_id: int
    status: DeliveryStatus
    detail: Optional[str] = None


class NotificationSender(Protocol):
    """Delivery contract for the provider integrations."""

    async def send(
        self,
        recipients: Sequence[PushRecipient],
        message: MessageEnvelope,
    ) -> list[DeliveryResult]:
        """Deliver ``message`` and report a result for every recipient."""


class NullSender:
    """Sender used when no push transport is configured."""

    async def send(
        self,
        recipients: Sequence[PushRecipient],
        message: MessageEnvelope,
    ) -> list[DeliveryResult]:
        logger.debug("Push notifications disabled; dropping %d recipient(s)", len(recipients))
        return [DeliveryResult(recipient.token_id, DeliveryStatus.skipped) for recipient in recipients]


class FCMSender:
    """Sends through the FCM HTTP v1 API using a service account."""

    def __init__(self, settings: Settings) -> None:
        self.project_id = settings.FCM_PROJECT_ID
        self.service_account_json = settings.FCM_SERVICE_ACCOUNT_JSON
        self.timeout = settings.FCM_TIMEOUT_SECONDS

    def _get_access_token(self) -> Optional[str]:
        """Get OAuth2 access token from service account credentials.

        Returns None if credentials are missing or invalid.
        """
        if not self.service_account_json:
            return None

        try:
            service_account_info = json.loads(self.service_account_json)
            credentials = service_account.Credentials.from_service_account_info(
                service_account_info,
                scopes=FCM_SCOPES,
            )
            # Refresh to get access token
            credentials.refresh(Request())
            return credentials.token
        except Exception as exc:
            logger.error("Failed to get FCM access token: %s", exc, exc_info=True)
            return None

    def _build_message(self, token: str, message: MessageEnvelope) -> Dict[str, Any]:
        title = message.title
        if message.subtitle:
            title = f"{message.title}: {message.subtitle}"
        # FCM data values must be strings
        data = {"url": message.url}
        if message.image_url:
            data["image_url"] = message.image_url

        payload: Dict[str, Any] = {
            "message": {
                "token": token,
                "notification": {
                    "title": title,
                    "body": message.body,
                },
                "data": data,
                "apns": {
                    "payload": {
                        "aps": {
                            "alert": {
                                "title": message.title,
                                "subtitle": message.subtitle or "",
                                "body": message.body,
                            }
                        }
                    }
                },
            }
        }
        if message.image_url:
            payload["message"]["notification"]["image"] = message.image_url
        return payload

    async def _send_one(
        self,
        client: httpx.AsyncClient,
        access_token: str,
        recipient: PushRecipient,
        message: MessageEnvelope,
    ) -> DeliveryResult:
        url = FCM_API_URL.format(project_id=self.project_id)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        token_hint = recipient.token[:20]
        try:
            response = await client.post(
                url,
                json=self._build_message(recipient.token, message),
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            logger.warning("FCM request timed out for token: %s...", token_hint)
            return DeliveryResult(recipient.token_id, DeliveryStatus.failed, "timeout")
        except httpx.HTTPError as exc:
            logger.warning("FCM request failed for token %s...: %s", token_hint, exc)
            return DeliveryResult(recipient.token_id, DeliveryStatus.failed, str(exc))

        if response.status_code == 200:
            logger.debug("Push notification sent successfully to token: %s...", token_hint)
            return DeliveryResult(recipient.token_id, DeliveryStatus.delivered)
        if response.status_code in (404, 410):
            # Token invalid or unregistered
            logger.warning("FCM token invalid (status %s): %s...", response.status_code, token_hint)
            return DeliveryResult(recipient.token_id, DeliveryStatus.invalid, str(response.status_code))
        if response.status_code == 401:
            logger.error("FCM authentication failed (status %s): %s", response.status_code, response.text)
        else:
            logger.error("FCM request failed (status %s): %s", response.status_code, response.text)
        return DeliveryResult(recipient.token_id, DeliveryStatus.failed, str(response.status_code))

    async def send(
        self,
        recipients: Sequence[PushRecipient],
        message: MessageEnvelope,
    ) -> list[DeliveryResult]:
        if not recipients:
            return []

        if not self.project_id:
            logger.warning("FCM project id not configured, skipping push notification")
            return [
                DeliveryResult(recipient.token_id, DeliveryStatus.skipped, "not configured")
                for recipient in recipients
            ]

        access_token = self._get_access_token()
        if not access_token:
            logger.error("Failed to get FCM access token")
            return [
                DeliveryResult(recipient.token_id, DeliveryStatus.failed, "no access token")
                for recipient in recipients
            ]

        # APNS device tokens are forwarded by FCM, so every service shares one request shape
        results: list[DeliveryResult] = []
        async with httpx.AsyncClient() as client:
            for recipient in recipients:
                results.append(await self._send_one(client, access_token, recipient, message))
        return results


def build_sender(settings: Settings) -> NotificationSender:
    if settings.FCM_ENABLED:
        return FCMSender(settings)
    return NullSender()
