import pytest
from pydantic import TypeAdapter, ValidationError

from push_service.schemas.identity import (
    GuestIdentity,
    Identity,
    Target,
    UserIdentity,
    identity_from_columns,
    owner_columns,
)

identity_adapter = TypeAdapter(Identity)


def test_identity_discriminates_on_kind():
    assert identity_adapter.validate_python({"kind": "user", "id": 5}) == UserIdentity(id=5)
    assert identity_adapter.validate_python({"kind": "guest", "id": "g1"}) == GuestIdentity(id="g1")


def test_user_and_guest_with_same_key_are_different_identities():
    # A guest whose id happens to look like a user id must never match the user.
    assert UserIdentity(id=5) != GuestIdentity(id="5")
    assert len({UserIdentity(id=5), GuestIdentity(id="5"), UserIdentity(id=5)}) == 2


def test_user_identity_requires_positive_id():
    with pytest.raises(ValidationError):
        UserIdentity(id=0)


def test_targets_are_hashable_and_compare_by_value():
    assert {Target(object_type="post", object_id=1), Target(object_type="post", object_id=1)} == {
        Target(object_type="post", object_id=1)
    }


def test_identity_from_columns_rejects_ambiguous_rows():
    assert identity_from_columns(7, None) == UserIdentity(id=7)
    assert identity_from_columns(None, "g1") == GuestIdentity(id="g1")
    with pytest.raises(ValueError):
        identity_from_columns(7, "g1")
    with pytest.raises(ValueError):
        identity_from_columns(None, None)


def test_owner_columns_clear_the_other_key():
    assert owner_columns(UserIdentity(id=3)) == {"user_id": 3, "guest_id": None}
    assert owner_columns(GuestIdentity(id="g1")) == {"user_id": None, "guest_id": "g1"}
