import pytest
from pydantic import ValidationError

from frontdesk.models.domain import (
    Business,
    BusinessMembership,
    Profile,
    Session,
    SessionSnapshot,
    User,
)
from frontdesk.types import MembershipRole


@pytest.mark.unit
class TestDomainModels:
    def test_session_expiry(self) -> None:
        session = Session(access_token="t", expires_at=100.0, user=User(id="u1"))
        assert session.is_expired(now=100.0)
        assert not session.is_expired(now=99.0)

    def test_membership_exposes_business_id(self) -> None:
        membership = BusinessMembership(
            role=MembershipRole.STAFF, business=Business(id="b1", slug="acme", name="Acme")
        )
        assert membership.business_id == "b1"
        assert membership.is_default is False

    def test_membership_is_immutable(self) -> None:
        membership = BusinessMembership(
            role=MembershipRole.OWNER, business=Business(id="b1", slug="acme", name="Acme")
        )
        with pytest.raises(ValidationError):
            membership.is_default = True  # type: ignore[misc]

    def test_unknown_profile_role_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Profile.model_validate({"id": "u1", "role": "admin"})

    def test_profile_without_role(self) -> None:
        assert Profile(id="u1").role is None

    def test_snapshot_defaults_to_loading(self) -> None:
        snapshot = SessionSnapshot()
        assert snapshot.loading is True
        assert snapshot.businesses == []
