from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlmodel.ext.asyncio.session import AsyncSession

from push_service.core.config import Settings
from push_service.schemas.identity import GuestIdentity, Target, UserIdentity
from push_service.schemas.push import MessageEnvelope, NotificationPayload
from push_service.services.content_source import ContentSource
from push_service.services.push_queue import DeliveryQueue
from push_service.services.push_subscriptions import SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass
class ContentNotice:
    """A newly published post or comment, as reported by the host platform.

    ``targets`` lists everything whose followers should hear about it, e.g. the
    post itself and its section, or the comment's post.
    """

    content_type: str
    content_id: int
    username: str
    title: str = ""
    parent_title: Optional[str] = None
    targets: list[Target] = field(default_factory=list)
    author: Optional[UserIdentity | GuestIdentity] = None
    is_published: bool = True
    image_url: Optional[str] = None


class PushSource:
    """Turns new content into queued notifications for its subscribers."""

    def __init__(
        self,
        settings: Settings,
        *,
        queue: DeliveryQueue,
        subscriptions: SubscriptionStore,
        content_source: ContentSource,
    ) -> None:
        self.subtitles = settings.PUSH_SUBTITLES_ENABLED
        self.queue = queue
        self.subscriptions = subscriptions
        self.content_source = content_source

    def prepare_message_envelope(self, content_type: str, data: dict, subtitles: bool) -> MessageEnvelope:
        subtitle = None
        if content_type == "post":
            body = '%s submitted a new post "%s"' % (data["username"], data["title"])
            parent_title = data.get("parent_title")
            if parent_title and subtitles:
                title = "New post"
                subtitle = parent_title
            elif parent_title:
                title = 'New post in "%s"' % parent_title
            else:
                title = "New post"
            url = f"/posts/{data['id']}"
        elif content_type == "comment":
            body = "%s submitted a new comment" % data["username"]
            parent_title = data.get("parent_title")
            if parent_title and subtitles:
                title = "New comment"
                subtitle = parent_title
            elif parent_title:
                title = 'New comment on "%s"' % parent_title
            else:
                title = "New comment"
            url = f"/comments/{data['id']}"
        else:
            raise ValueError(f"Unsupported content type: {content_type}")

        return MessageEnvelope(
            title=title,
            subtitle=subtitle,
            body=body,
            url=url,
            image_url=data.get("image_url"),
        )

    async def publish(self, session: AsyncSession, notice: ContentNotice) -> Optional[int]:
        """Queue a notification for ``notice``; returns the queue entry id.

        Returns None when the content is not eligible or nobody is subscribed.
        """
        if not notice.is_published:
            logger.debug("push: %s %s is not published, skipping", notice.content_type, notice.content_id)
            return None
        if not notice.targets:
            return None

        entity = await self.content_source.get_content(notice.content_type, notice.content_id)
        if entity is None:
            logger.warning("push: %s %s no longer exists, skipping", notice.content_type, notice.content_id)
            return None

        subscribers = await self.subscriptions.count_subscribers(session, notice.targets)
        if subscribers == 0:
            logger.debug("push: no subscribers for %s %s", notice.content_type, notice.content_id)
            return None

        message = self.prepare_message_envelope(
            notice.content_type,
            {
                "id": notice.content_id,
                "username": notice.username,
                "title": notice.title,
                "parent_title": notice.parent_title,
                "image_url": notice.image_url,
            },
            self.subtitles,
        )
        payload = NotificationPayload(
            content_type=notice.content_type,
            content_id=notice.content_id,
            targets=notice.targets,
            author=notice.author,
            message=message,
        )
        entry_id = await self.queue.enqueue(session, payload)
        logger.info(
            "push: queued %s %s for %d device(s) as entry %s",
            notice.content_type,
            notice.content_id,
            subscribers,
            entry_id,
        )
        return entry_id
