"""Contract for the content platform the push service notifies about."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol


class ContentSource(Protocol):
    """Read-only view of the host platform's content and permissions.

    The push service only uses it to validate subscription requests and to
    check content before a notification is queued.
    """

    async def get_entity_types(self) -> Mapping[str, str]:
        """Map public content type tags (e.g. ``post``) to canonical types."""

    async def get_content(self, content_type: str, content_id: int) -> Optional[Any]:
        """Return the entity, or None when it does not exist."""

    async def get_content_type(self, entity: Any) -> str:
        """Return the public content type tag of ``entity``."""

    async def current_user_can(self, action: str, content_type: str, content_id: int) -> bool:
        """Whether the requesting principal may perform ``action`` on the content."""
