from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PositiveInt


class UserIdentity(BaseModel):
    """An authenticated user, keyed by the platform's numeric user id."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["user"] = "user"
    id: PositiveInt


class GuestIdentity(BaseModel):
    """An anonymous session, keyed by the client-generated guest id (a UUID)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["guest"] = "guest"
    id: str = Field(min_length=1, max_length=64)


Identity = Annotated[Union[UserIdentity, GuestIdentity], Field(discriminator="kind")]


class Target(BaseModel):
    """A piece of notifiable content: (object_type, object_id)."""
    model_config = ConfigDict(frozen=True)

    object_type: str = Field(min_length=1, max_length=64)
    object_id: PositiveInt


def identity_from_columns(user_id: Optional[int], guest_id: Optional[str]) -> UserIdentity | GuestIdentity:
    """Rebuild the owner of a stored row from its user_id/guest_id pair."""
    if user_id is not None and guest_id is None:
        return UserIdentity(id=user_id)
    if guest_id is not None and user_id is None:
        return GuestIdentity(id=guest_id)
    raise ValueError(f"row must have exactly one owner (user_id={user_id!r}, guest_id={guest_id!r})")


def owner_columns(owner: UserIdentity | GuestIdentity) -> dict:
    """Column values that store ``owner`` on a token or subscription row."""
    if isinstance(owner, UserIdentity):
        return {"user_id": owner.id, "guest_id": None}
    return {"user_id": None, "guest_id": owner.id}
