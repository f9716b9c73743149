"""Exception hierarchy for FrontDesk."""


class FrontDeskError(Exception):
    """Base exception for all FrontDesk errors."""


class IdentityProviderError(FrontDeskError):
    """Raised when the identity provider cannot be reached or answers garbage."""


class AuthenticationError(FrontDeskError):
    """Raised when sign-in or sign-up is rejected.

    Terminal: the message is meant to be shown to the user and the call is
    never retried.
    """

    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.user_message = message
        self.status_code = status_code


class BackendError(FrontDeskError):
    """Raised when the business backend fails a membership read or write."""


class TenantNotFoundError(FrontDeskError):
    """Raised when switching to a business the user is not a member of."""


class RoleMismatchError(FrontDeskError):
    """Raised when an explicit role hint disagrees with the stored profile role."""


class ConfigError(FrontDeskError):
    """Raised when configuration is invalid."""
