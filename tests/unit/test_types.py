import pytest

from frontdesk.exceptions import (
    AuthenticationError,
    BackendError,
    ConfigError,
    FrontDeskError,
    IdentityProviderError,
    RoleMismatchError,
    TenantNotFoundError,
)
from frontdesk.types import LoadState, MembershipRole, Permission, ProfileRole


@pytest.mark.unit
class TestEnums:
    def test_profile_role_values(self) -> None:
        assert ProfileRole.OWNER.value == "owner"
        assert ProfileRole.CLIENT.value == "client"

    def test_membership_role_values(self) -> None:
        assert MembershipRole.OWNER.value == "owner"
        assert MembershipRole.STAFF.value == "staff"

    def test_load_states(self) -> None:
        assert {s.value for s in LoadState} >= {"loading", "loaded", "empty", "timed_out"}

    def test_permission_values_are_snake_case(self) -> None:
        assert all(p.value == p.value.lower() for p in Permission)
        assert Permission.EDIT_SETTINGS == "edit_settings"


@pytest.mark.unit
class TestExceptions:
    @pytest.mark.parametrize(
        "exc_type",
        [
            AuthenticationError,
            BackendError,
            ConfigError,
            IdentityProviderError,
            RoleMismatchError,
            TenantNotFoundError,
        ],
    )
    def test_hierarchy(self, exc_type) -> None:
        assert issubclass(exc_type, FrontDeskError)

    def test_authentication_error_carries_status(self) -> None:
        err = AuthenticationError("User already registered", status_code=400)
        assert err.status_code == 400
        assert err.user_message == "User already registered"
        assert AuthenticationError("nope").status_code == 401
