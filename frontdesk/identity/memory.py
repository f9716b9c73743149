"""In-memory identity provider for local development and tests."""

from __future__ import annotations

import secrets
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import structlog

from frontdesk.exceptions import AuthenticationError, IdentityProviderError
from frontdesk.identity.provider import IdentityProvider
from frontdesk.models.domain import Profile, Session, SignUpResult, User
from frontdesk.types import AuthEvent, ProfileRole

logger = structlog.get_logger(__name__)


@dataclass
class _Account:
    password: str
    user: User


@dataclass
class AccountDirectory:
    """Shared account and profile tables behind every in-memory provider.

    Set ``available`` to False to simulate the provider being unreachable.
    """

    accounts: dict[str, _Account] = field(default_factory=dict)  # email -> account
    profiles: dict[str, Profile] = field(default_factory=dict)  # user id -> profile
    available: bool = True
    require_email_confirmation: bool = False

    def add_account(
        self,
        email: str,
        password: str,
        role: ProfileRole | None = None,
        user_id: str | None = None,
        with_profile: bool = True,
    ) -> User:
        user = User(id=user_id or str(uuid.uuid4()), email=email)
        self.accounts[email.lower()] = _Account(password=password, user=user)
        if with_profile:
            self.profiles[user.id] = Profile(id=user.id, role=role, email=email)
        return user


class InMemoryIdentityProvider(IdentityProvider):
    """Identity provider backed by an AccountDirectory."""

    def __init__(self, directory: AccountDirectory, session_ttl: float = 3600) -> None:
        super().__init__()
        self._directory = directory
        self._session_ttl = session_ttl
        self._session: Session | None = None

    def _check_available(self) -> None:
        if not self._directory.available:
            msg = "Identity provider unavailable"
            raise IdentityProviderError(msg)

    def _issue_session(self, user: User) -> Session:
        return Session(
            access_token=secrets.token_urlsafe(24),
            refresh_token=secrets.token_urlsafe(24),
            expires_at=time.time() + self._session_ttl,
            user=user,
        )

    async def get_session(self) -> Session | None:
        self._check_available()
        return self._session

    async def get_user(self) -> User | None:
        self._check_available()
        return self._session.user if self._session else None

    async def get_profile(self, user_id: str) -> Profile | None:
        self._check_available()
        return self._directory.profiles.get(user_id)

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        self._check_available()
        account = self._directory.accounts.get(email.lower())
        if account is None or not secrets.compare_digest(account.password, password):
            raise AuthenticationError("Invalid login credentials")
        self._session = self._issue_session(account.user)
        self._emit(AuthEvent.SIGNED_IN, self._session)
        return self._session

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> SignUpResult:
        self._check_available()
        metadata = metadata or {}
        if email.lower() in self._directory.accounts:
            raise AuthenticationError("User already registered", status_code=400)
        if len(password) < 6:
            raise AuthenticationError("Password should be at least 6 characters", status_code=400)

        raw_role = metadata.get("role")
        role = ProfileRole(raw_role) if raw_role in set(ProfileRole) else None
        user = self._directory.add_account(email, password, role=role)
        user = user.model_copy(update={"user_metadata": dict(metadata)})
        self._directory.accounts[email.lower()].user = user

        if self._directory.require_email_confirmation:
            logger.info("signup_confirmation_required", user_id=user.id)
            return SignUpResult(user=user, email_confirmation_required=True)

        self._session = self._issue_session(user)
        self._emit(AuthEvent.SIGNED_IN, self._session)
        return SignUpResult(user=user, session=self._session)

    async def sign_out(self) -> None:
        self._session = None
        self._emit(AuthEvent.SIGNED_OUT, None)
