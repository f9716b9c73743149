"""Supabase (GoTrue + PostgREST) identity provider over httpx."""

from __future__ import annotations

import time
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from frontdesk.exceptions import AuthenticationError, IdentityProviderError
from frontdesk.identity.provider import IdentityProvider
from frontdesk.models.domain import Profile, Session, SignUpResult, User
from frontdesk.types import AuthEvent

logger = structlog.get_logger(__name__)

_HTTP_TIMEOUT = 10.0


def _error_message(resp: httpx.Response) -> str:
    """Pull the human-readable message out of a GoTrue error body."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    for key in ("error_description", "msg", "message", "error"):
        if isinstance(body, dict) and body.get(key):
            return str(body[key])
    return f"HTTP {resp.status_code}"


def _parse_user(data: dict[str, Any]) -> User:
    return User(
        id=data["id"],
        email=data.get("email") or "",
        user_metadata=data.get("user_metadata") or {},
    )


def _parse_session(data: dict[str, Any]) -> Session:
    expires_at = data.get("expires_at")
    if expires_at is None:
        expires_at = time.time() + float(data.get("expires_in", 3600))
    return Session(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token", ""),
        expires_at=float(expires_at),
        user=_parse_user(data["user"]),
    )


class SupabaseIdentityProvider(IdentityProvider):
    """Talks to the Supabase auth and REST endpoints for one browser session."""

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._http = http or httpx.AsyncClient(timeout=_HTTP_TIMEOUT)
        self._owns_http = http is None
        self._session: Session | None = None

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        return {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {access_token or self._anon_key}",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, f"{self._base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("identity_request_failed", path=path, error=str(exc))
            raise IdentityProviderError(str(exc)) from exc

    async def get_session(self) -> Session | None:
        session = self._session
        if session is None or not session.is_expired():
            return session
        if not session.refresh_token:
            return session
        return await self._refresh(session)

    async def _refresh(self, session: Session) -> Session | None:
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": session.refresh_token},
            headers=self._headers(),
        )
        if resp.status_code >= 500:
            raise IdentityProviderError(_error_message(resp))
        if resp.status_code >= 400:
            logger.info("session_refresh_rejected", user_id=session.user.id)
            self._session = None
            self._emit(AuthEvent.SIGNED_OUT, None)
            return None
        self._session = _parse_session(resp.json())
        self._emit(AuthEvent.TOKEN_REFRESHED, self._session)
        return self._session

    async def get_user(self) -> User | None:
        if self._session is None:
            return None
        resp = await self._request(
            "GET", "/auth/v1/user", headers=self._headers(self._session.access_token)
        )
        if resp.status_code == 401:
            return None
        if resp.status_code >= 400:
            raise IdentityProviderError(_error_message(resp))
        return _parse_user(resp.json())

    async def get_profile(self, user_id: str) -> Profile | None:
        token = self._session.access_token if self._session else None
        resp = await self._request(
            "GET",
            "/rest/v1/profiles",
            params={"id": f"eq.{user_id}", "select": "*"},
            headers=self._headers(token),
        )
        if resp.status_code >= 400:
            raise IdentityProviderError(_error_message(resp))
        rows = resp.json()
        if not rows:
            return None
        try:
            return Profile.model_validate(rows[0])
        except ValidationError as exc:
            # Unknown role values read as no role
            logger.warning("profile_row_invalid", user_id=user_id, error=str(exc))
            return Profile(id=user_id, email=rows[0].get("email"))

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        resp = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            headers=self._headers(),
        )
        if resp.status_code >= 500:
            raise IdentityProviderError(_error_message(resp))
        if resp.status_code >= 400:
            raise AuthenticationError(_error_message(resp), status_code=401)
        self._session = _parse_session(resp.json())
        self._emit(AuthEvent.SIGNED_IN, self._session)
        return self._session

    async def sign_up(
        self, email: str, password: str, metadata: dict[str, Any] | None = None
    ) -> SignUpResult:
        resp = await self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": metadata or {}},
            headers=self._headers(),
        )
        if resp.status_code >= 500:
            raise IdentityProviderError(_error_message(resp))
        if resp.status_code >= 400:
            raise AuthenticationError(_error_message(resp), status_code=400)

        data = resp.json()
        if data.get("access_token"):
            self._session = _parse_session(data)
            self._emit(AuthEvent.SIGNED_IN, self._session)
            return SignUpResult(user=self._session.user, session=self._session)

        # No session: the provider wants the address confirmed first
        user_data = data.get("user") or data
        user = _parse_user(user_data) if user_data.get("id") else None
        return SignUpResult(user=user, email_confirmation_required=True)

    async def sign_out(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            try:
                resp = await self._request(
                    "POST", "/auth/v1/logout", headers=self._headers(session.access_token)
                )
                if resp.status_code >= 400:
                    logger.warning("remote_sign_out_failed", status=resp.status_code)
            except IdentityProviderError:
                logger.warning("remote_sign_out_unreachable")
        self._emit(AuthEvent.SIGNED_OUT, None)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
