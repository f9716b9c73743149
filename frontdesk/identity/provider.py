"""Abstract identity provider interface (sessions, users, profiles)."""

from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from frontdesk.exceptions import ConfigError

if TYPE_CHECKING:
    from frontdesk.config.settings import Settings
    from frontdesk.identity.memory import AccountDirectory
    from frontdesk.models.domain import Profile, Session, SignUpResult, User
    from frontdesk.types import AuthEvent

logger = structlog.get_logger(__name__)

AuthListener = Callable[["AuthEvent", "Session | None"], None]


class IdentityProvider(ABC):
    """Per-browser client for the external identity service.

    Holds the current session in its own storage and fans auth state changes
    out to registered listeners.
    """

    def __init__(self) -> None:
        self._listeners: list[AuthListener] = []

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        """Register a listener and return a function that removes it."""
        self._listeners.append(callback)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: AuthEvent, session: Session | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, session)
            except Exception:
                logger.exception("auth_listener_failed", auth_event=str(event))

    @abstractmethod
    async def get_session(self) -> Session | None:
        """Return the stored session, refreshing it if the provider supports it."""

    @abstractmethod
    async def get_user(self) -> User | None:
        """Return the user behind the stored session."""

    @abstractmethod
    async def get_profile(self, user_id: str) -> Profile | None:
        """Fetch the profile row for a user. Returns None if it does not exist."""

    @abstractmethod
    async def sign_in_with_password(self, email: str, password: str) -> Session:
        """Sign in. Raises AuthenticationError when credentials are rejected."""

    @abstractmethod
    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> SignUpResult:
        """Create an account. Raises AuthenticationError when the provider refuses."""

    @abstractmethod
    async def sign_out(self) -> None:
        """Drop the stored session and notify listeners."""

    async def aclose(self) -> None:  # noqa: B027 - optional hook
        """Release transport resources."""


def create_identity_provider(
    settings: Settings, directory: AccountDirectory | None = None
) -> IdentityProvider:
    """Factory: create the identity provider selected by settings.

    Memory mode needs the shared account directory the app was built with.
    """
    if settings.identity_mode == "supabase":
        from frontdesk.identity.supabase import SupabaseIdentityProvider

        if not (settings.supabase_url and settings.supabase_anon_key):
            msg = "Supabase identity needs SUPABASE_URL and SUPABASE_ANON_KEY"
            raise ConfigError(msg)
        return SupabaseIdentityProvider(
            base_url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
        )

    from frontdesk.identity.memory import AccountDirectory, InMemoryIdentityProvider

    return InMemoryIdentityProvider(
        directory if directory is not None else AccountDirectory(),
        session_ttl=settings.memory_session_ttl_seconds,
    )
