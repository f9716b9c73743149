"""Identity session store: non-throwing session reads and auth event fan-out."""

from __future__ import annotations

import contextlib
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

from frontdesk.exceptions import AuthenticationError, IdentityProviderError
from frontdesk.types import AuthEvent

if TYPE_CHECKING:
    from frontdesk.identity.provider import AuthListener, IdentityProvider
    from frontdesk.models.domain import Profile, Session, SignUpResult

logger = structlog.get_logger(__name__)

_UNAVAILABLE_MESSAGE = "Sign-in is temporarily unavailable. Please try again shortly."


class IdentitySessionStore:
    """Wraps an IdentityProvider for the session layer.

    Reads never raise: an unreachable provider reads as "no session" and the
    failure is kept in ``last_error`` for diagnostics. Sign-in and sign-up
    failures are terminal and raise AuthenticationError.
    """

    def __init__(self, provider: IdentityProvider) -> None:
        self._provider = provider
        self._subscribers: list[AuthListener] = []
        self._detach = provider.on_auth_state_change(self._relay)
        self.last_error: str | None = None

    @property
    def provider(self) -> IdentityProvider:
        return self._provider

    def subscribe(self, on_change: AuthListener) -> Callable[[], None]:
        """Register for SIGNED_IN / SIGNED_OUT / ... notifications."""
        self._subscribers.append(on_change)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(on_change)

        return unsubscribe

    def _relay(self, event: AuthEvent, session: Session | None) -> None:
        logger.debug("auth_state_changed", auth_event=str(event))
        for subscriber in list(self._subscribers):
            subscriber(event, session)

    async def get_current_session(self) -> Session | None:
        try:
            session = await self._provider.get_session()
        except IdentityProviderError as exc:
            self.last_error = str(exc) or "identity provider unavailable"
            logger.warning("session_lookup_failed", error=self.last_error)
            return None

        self.last_error = None
        if session is not None and session.is_expired():
            logger.info("session_expired", user_id=session.user.id)
            await self._provider.sign_out()
            return None
        return session

    async def get_profile(self, user_id: str) -> Profile | None:
        try:
            profile = await self._provider.get_profile(user_id)
        except IdentityProviderError as exc:
            self.last_error = str(exc) or "identity provider unavailable"
            logger.warning("profile_lookup_failed", user_id=user_id, error=self.last_error)
            return None
        if profile is None:
            logger.warning("profile_missing", user_id=user_id)
        return profile

    async def sign_in(self, email: str, password: str) -> Session:
        try:
            return await self._provider.sign_in_with_password(email, password)
        except IdentityProviderError as exc:
            self.last_error = str(exc)
            raise AuthenticationError(_UNAVAILABLE_MESSAGE, status_code=503) from exc
        except AuthenticationError as exc:
            logger.info("sign_in_rejected", reason=exc.user_message)
            raise

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> SignUpResult:
        try:
            return await self._provider.sign_up(email, password, metadata)
        except IdentityProviderError as exc:
            self.last_error = str(exc)
            raise AuthenticationError(_UNAVAILABLE_MESSAGE, status_code=503) from exc
        except AuthenticationError as exc:
            logger.info("sign_up_rejected", reason=exc.user_message)
            raise

    async def sign_out(self) -> None:
        try:
            await self._provider.sign_out()
        except IdentityProviderError as exc:
            logger.warning("sign_out_failed", error=str(exc))
            self._relay(AuthEvent.SIGNED_OUT, None)

    async def close(self) -> None:
        self._detach()
        self._subscribers.clear()
        await self._provider.aclose()
