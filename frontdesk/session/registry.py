"""Browser-session registry: one SessionContext per signed session cookie."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from frontdesk.access.routing import build_route_table
from frontdesk.identity.provider import create_identity_provider
from frontdesk.identity.store import IdentitySessionStore
from frontdesk.session.context import SessionContext
from frontdesk.tenancy.loader import MembershipLoader
from frontdesk.tenancy.selection import TenantSelectionPolicy

if TYPE_CHECKING:
    from collections.abc import Callable

    from frontdesk.config.settings import Settings
    from frontdesk.identity.memory import AccountDirectory
    from frontdesk.tenancy.backend import BusinessBackend
    from frontdesk.tenancy.selection_store import SelectionStore

logger = structlog.get_logger(__name__)


class SessionContextFactory:
    """Builds a fresh, isolated SessionContext for a device id.

    The backend and selection store are shared; the identity provider is per
    context because it holds that browser's tokens.
    """

    def __init__(
        self,
        settings: Settings,
        backend: BusinessBackend,
        selection_store: SelectionStore,
        directory: AccountDirectory | None = None,
    ) -> None:
        self._settings = settings
        self._backend = backend
        self._selection_store = selection_store
        self._directory = directory
        self._routes = build_route_table(settings.marketplace_enabled)

    def __call__(self, client_id: str) -> SessionContext:
        provider = create_identity_provider(self._settings, self._directory)
        loader = MembershipLoader(
            self._backend,
            timeout_seconds=self._settings.membership_timeout_seconds,
            retry_attempts=self._settings.membership_retry_attempts,
            retry_delay_ms=self._settings.membership_retry_delay_ms,
        )
        return SessionContext(
            identity=IdentitySessionStore(provider),
            loader=loader,
            policy=TenantSelectionPolicy(self._selection_store, self._backend),
            client_id=client_id,
            routes=self._routes,
            marketplace_enabled=self._settings.marketplace_enabled,
        )


@dataclass
class _Entry:
    context: SessionContext
    last_seen: float
    in_flight: int = 0


class SessionRegistry:
    """Maps browser session ids to live contexts.

    Only signed-in contexts outlive the request that used them: a context
    that is signed out when its last in-flight request is released gets
    closed. Contexts idle for longer than ``max_age`` seconds are closed
    lazily on the next lookup.
    """

    def __init__(self, factory: Callable[[str], SessionContext], max_age: int = 86400) -> None:
        self._factory = factory
        self._max_age = max_age
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._entries

    async def get_or_create(self, session_id: str, client_id: str) -> SessionContext:
        """Return the live context for ``session_id``; pair every call with release()."""
        await self._cleanup()
        entry = self._entries.get(session_id)
        if entry is None:
            entry = _Entry(context=self._factory(client_id), last_seen=time.monotonic())
            self._entries[session_id] = entry
            entry.in_flight += 1
            logger.debug("session_context_created", client_id=client_id)
            await entry.context.start()
        else:
            entry.last_seen = time.monotonic()
            entry.in_flight += 1
            await entry.context.revalidate()
        return entry.context

    async def release(self, session_id: str, context: SessionContext) -> None:
        """End one request's use of ``context``; signed-out contexts are not kept."""
        entry = self._entries.get(session_id)
        if entry is None or entry.context is not context:
            return
        entry.in_flight = max(0, entry.in_flight - 1)
        entry.last_seen = time.monotonic()
        if entry.in_flight == 0 and not context.is_authenticated:
            await self.discard(session_id)

    async def discard(self, session_id: str) -> None:
        entry = self._entries.pop(session_id, None)
        if entry is not None:
            await entry.context.close()

    async def close_all(self) -> None:
        entries, self._entries = list(self._entries.values()), {}
        for entry in entries:
            await entry.context.close()

    async def _cleanup(self) -> None:
        now = time.monotonic()
        expired = [
            sid
            for sid, e in self._entries.items()
            if e.in_flight == 0 and now - e.last_seen > self._max_age
        ]
        for sid in expired:
            logger.info("session_context_evicted")
            await self.discard(sid)
