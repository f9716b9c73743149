"""Business backend collaborator: membership reads and default-flag writes."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from pydantic import ValidationError

from frontdesk.exceptions import BackendError, ConfigError
from frontdesk.models.domain import Business, BusinessMembership

if TYPE_CHECKING:
    from frontdesk.config.settings import Settings

logger = structlog.get_logger(__name__)

_BUSINESS_COLUMNS = "id,slug,name,phone,industry,service_zip_codes,is_active,subscription_tier"
_MEMBERSHIP_SELECT = f"role,is_default,business:businesses({_BUSINESS_COLUMNS})"


class BusinessBackend(ABC):
    """Abstract access to the business_users / businesses tables."""

    @abstractmethod
    async def list_memberships(self, user_id: str, access_token: str) -> list[BusinessMembership]:
        """Return every membership of the user, in the backend's natural order."""

    @abstractmethod
    async def set_default_membership(
        self, user_id: str, business_id: str, access_token: str
    ) -> None:
        """Clear every is_default flag of the user, then set it on one business."""

    @abstractmethod
    async def get_business_by_slug(self, slug: str) -> Business | None:
        """Public lookup of an active business by its slug."""

    async def aclose(self) -> None:  # noqa: B027 - optional hook
        """Release transport resources."""


class RestBusinessBackend(BusinessBackend):
    """PostgREST-style backend reached over httpx."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._http = http or httpx.AsyncClient(timeout=10.0)
        self._owns_http = http is None

    def _headers(self, access_token: str) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }

    async def _request(
        self, method: str, table: str = "business_users", **kwargs: Any
    ) -> httpx.Response:
        url = f"{self._base_url}/rest/v1/{table}"
        try:
            resp = await self._http.request(method, url, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise BackendError(str(exc)) from exc
        return resp

    async def list_memberships(self, user_id: str, access_token: str) -> list[BusinessMembership]:
        resp = await self._request(
            "GET",
            params={"select": _MEMBERSHIP_SELECT, "user_id": f"eq.{user_id}", "order": "created_at"},
            headers=self._headers(access_token),
        )
        try:
            rows = resp.json()
        except ValueError as exc:
            raise BackendError("Membership response is not JSON") from exc

        memberships: list[BusinessMembership] = []
        for row in rows:
            if not row.get("business"):
                # Business row hidden by row-level security or deleted
                logger.warning("membership_without_business", user_id=user_id)
                continue
            try:
                memberships.append(BusinessMembership.model_validate(row))
            except ValidationError as exc:
                logger.warning("membership_row_invalid", user_id=user_id, error=str(exc))
        return memberships

    async def set_default_membership(
        self, user_id: str, business_id: str, access_token: str
    ) -> None:
        headers = self._headers(access_token)
        await self._request(
            "PATCH",
            params={"user_id": f"eq.{user_id}"},
            json={"is_default": False},
            headers=headers,
        )
        await self._request(
            "PATCH",
            params={"user_id": f"eq.{user_id}", "business_id": f"eq.{business_id}"},
            json={"is_default": True},
            headers=headers,
        )

    async def get_business_by_slug(self, slug: str) -> Business | None:
        resp = await self._request(
            "GET",
            table="businesses",
            params={"select": _BUSINESS_COLUMNS, "slug": f"eq.{slug}", "is_active": "eq.true"},
            headers=self._headers(self._api_key),
        )
        try:
            rows = resp.json()
        except ValueError as exc:
            raise BackendError("Business response is not JSON") from exc
        if not rows:
            return None
        try:
            return Business.model_validate(rows[0])
        except ValidationError as exc:
            logger.warning("business_row_invalid", slug=slug, error=str(exc))
            return None

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()


class InMemoryBusinessBackend(BusinessBackend):
    """In-memory fallback for dev/testing without a backend service.

    ``delay_seconds`` simulates a slow backend and ``fail_reads`` /
    ``fail_writes`` simulate outages.
    """

    def __init__(self, delay_seconds: float = 0.0) -> None:
        self._memberships: dict[str, list[BusinessMembership]] = {}
        self._businesses: dict[str, Business] = {}
        self.delay_seconds = delay_seconds
        self.fail_reads = False
        self.fail_writes = False
        self.read_calls = 0
        self.write_calls = 0

    def add_business(self, business: Business) -> None:
        self._businesses[business.id] = business

    def add_membership(self, user_id: str, membership: BusinessMembership) -> None:
        self.add_business(membership.business)
        self._memberships.setdefault(user_id, []).append(membership)

    @property
    def businesses(self) -> list[Business]:
        return list(self._businesses.values())

    def remove_business(self, user_id: str, business_id: str) -> None:
        self._memberships[user_id] = [
            m for m in self._memberships.get(user_id, []) if m.business_id != business_id
        ]

    def memberships_of(self, user_id: str) -> list[BusinessMembership]:
        return list(self._memberships.get(user_id, []))

    async def list_memberships(self, user_id: str, access_token: str) -> list[BusinessMembership]:
        self.read_calls += 1
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail_reads:
            msg = "backend unavailable"
            raise BackendError(msg)
        return self.memberships_of(user_id)

    async def set_default_membership(
        self, user_id: str, business_id: str, access_token: str
    ) -> None:
        self.write_calls += 1
        if self.fail_writes:
            msg = "backend unavailable"
            raise BackendError(msg)
        self._memberships[user_id] = [
            m.model_copy(update={"is_default": m.business_id == business_id})
            for m in self._memberships.get(user_id, [])
        ]

    async def get_business_by_slug(self, slug: str) -> Business | None:
        if self.fail_reads:
            msg = "backend unavailable"
            raise BackendError(msg)
        return next(
            (b for b in self._businesses.values() if b.slug == slug and b.is_active), None
        )


def create_business_backend(
    settings: Settings, memory_backend: InMemoryBusinessBackend | None = None
) -> BusinessBackend:
    """Factory: create the business backend selected by settings."""
    base_url = settings.effective_backend_url
    if settings.identity_mode == "supabase":
        if not base_url:
            msg = "Supabase mode needs BACKEND_URL or SUPABASE_URL"
            raise ConfigError(msg)
        return RestBusinessBackend(base_url=base_url, api_key=settings.supabase_anon_key or "")
    return memory_backend if memory_backend is not None else InMemoryBusinessBackend()
