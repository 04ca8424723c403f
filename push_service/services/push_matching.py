"""Identity matching rules shared by the token and subscription stores.

Tokens and subscriptions are matched by owner identity, never by token id:
a token belongs to the audience of a subscription when both rows carry the
same user id, or both carry the same guest id.
"""

from typing import Iterable, Optional

from sqlalchemy import and_, false, or_
from sqlmodel import select

from push_service.models.push_subscription import PushSubscription
from push_service.models.push_token import PushToken
from push_service.schemas.identity import GuestIdentity, Target, UserIdentity


def owned_by(model, owner: UserIdentity | GuestIdentity):
    """WHERE clause selecting rows of ``model`` owned by ``owner``."""
    if isinstance(owner, UserIdentity):
        return and_(model.user_id == owner.id, model.guest_id.is_(None))
    return and_(model.guest_id == owner.id, model.user_id.is_(None))


def not_owned_by(model, owner: UserIdentity | GuestIdentity):
    if isinstance(owner, UserIdentity):
        return or_(model.user_id.is_(None), model.user_id != owner.id)
    return or_(model.guest_id.is_(None), model.guest_id != owner.id)


def targets_clause(targets: Iterable[Target]):
    clauses = [
        and_(
            PushSubscription.object_type == target.object_type,
            PushSubscription.object_id == target.object_id,
        )
        for target in targets
    ]
    if not clauses:
        return false()
    return or_(*clauses)


def same_owner_clause():
    """Join condition between push_tokens and push_subscriptions."""
    return or_(
        and_(
            PushSubscription.user_id.is_not(None),
            PushSubscription.user_id == PushToken.user_id,
        ),
        and_(
            PushSubscription.guest_id.is_not(None),
            PushSubscription.guest_id == PushToken.guest_id,
        ),
    )


def matching_tokens_statement(
    targets: Iterable[Target],
    excluding_owner: Optional[UserIdentity | GuestIdentity] = None,
):
    """SELECT DISTINCT tokens whose owner subscribes to any of ``targets``."""
    stmt = (
        select(PushToken)
        .join(PushSubscription, same_owner_clause())
        .where(targets_clause(targets))
    )
    if excluding_owner is not None:
        stmt = stmt.where(not_owned_by(PushToken, excluding_owner))
    return stmt.distinct()
