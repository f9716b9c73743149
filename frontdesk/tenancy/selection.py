"""Active-business selection and switching."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from frontdesk.exceptions import BackendError, TenantNotFoundError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from frontdesk.models.domain import Business, BusinessMembership
    from frontdesk.tenancy.backend import BusinessBackend
    from frontdesk.tenancy.selection_store import SelectionStore

logger = structlog.get_logger(__name__)


def select_active_tenant(
    memberships: Sequence[BusinessMembership], persisted_id: str | None
) -> BusinessMembership | None:
    """Pick the active membership.

    Order: the persisted id if still a member, then the first membership
    flagged default, then the first membership. None for an empty set.
    """
    if not memberships:
        return None
    if persisted_id:
        for membership in memberships:
            if membership.business_id == persisted_id:
                return membership
    for membership in memberships:
        if membership.is_default:
            return membership
    return memberships[0]


class TenantSelectionPolicy:
    """Single writer of the membership list and active business for one session.

    The remote ``is_default`` update after a switch is fire-and-forget: its
    failure is logged and never rolls back the local switch.
    """

    def __init__(self, store: SelectionStore, backend: BusinessBackend) -> None:
        self._store = store
        self._backend = backend
        self._memberships: list[BusinessMembership] = []
        self._active: BusinessMembership | None = None
        self._scope: str | None = None
        self._epoch = 0
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def memberships(self) -> list[BusinessMembership]:
        return list(self._memberships)

    @property
    def active(self) -> BusinessMembership | None:
        return self._active

    @property
    def active_business(self) -> Business | None:
        return self._active.business if self._active else None

    @property
    def pending_updates(self) -> frozenset[asyncio.Task[None]]:
        return frozenset(self._pending)

    def apply(
        self,
        scope: str,
        memberships: Sequence[BusinessMembership],
        epoch: int,
        forget_when_empty: bool = True,
    ) -> BusinessMembership | None:
        """Replace the membership set and re-derive the active business.

        An empty set clears the active business. The persisted selection is
        erased too unless ``forget_when_empty`` is False, which callers use when
        the set is empty only because the load failed or timed out.
        """
        self._scope = scope
        self._epoch = epoch
        self._memberships = list(memberships)

        if not self._memberships:
            self._active = None
            if forget_when_empty:
                self._store.delete(scope)
                logger.info("no_memberships_selection_cleared", scope=scope)
            return None

        defaults = [m.business_id for m in self._memberships if m.is_default]
        if len(defaults) > 1:
            logger.warning("multiple_default_memberships", scope=scope, business_ids=defaults)

        persisted = self._store.get(scope)
        chosen = select_active_tenant(self._memberships, persisted)
        if chosen is None:
            self._active = None
            return None
        if persisted and chosen.business_id != persisted:
            logger.warning(
                "persisted_business_not_a_member",
                scope=scope,
                persisted_id=persisted,
                fallback_id=chosen.business_id,
            )

        self._active = chosen
        if persisted != chosen.business_id:
            self._store.set(scope, chosen.business_id)
        logger.debug("active_business_selected", scope=scope, business_id=chosen.business_id)
        return chosen

    def switch_tenant(
        self, business_id: str, *, user_id: str, access_token: str
    ) -> BusinessMembership:
        """Make ``business_id`` active now; update the default flag in the background."""
        target = next((m for m in self._memberships if m.business_id == business_id), None)
        if target is None or self._scope is None:
            logger.warning("switch_to_unknown_business", business_id=business_id, user_id=user_id)
            msg = f"Not a member of business {business_id}"
            raise TenantNotFoundError(msg)

        if (
            self._active is not None
            and self._active.business_id == business_id
            and self._store.get(self._scope) == business_id
        ):
            return self._active

        self._active = target
        self._store.set(self._scope, business_id)
        logger.info("business_switched", user_id=user_id, business_id=business_id)
        self._schedule_default_update(user_id, business_id, access_token)
        return target

    def _schedule_default_update(self, user_id: str, business_id: str, access_token: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("default_business_update_skipped", business_id=business_id)
            return
        task = loop.create_task(
            self._update_default(user_id, business_id, access_token, self._epoch)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _update_default(
        self, user_id: str, business_id: str, access_token: str, epoch: int
    ) -> None:
        try:
            await self._backend.set_default_membership(user_id, business_id, access_token)
        except BackendError as exc:
            logger.warning(
                "default_business_update_failed",
                user_id=user_id,
                business_id=business_id,
                error=str(exc),
            )
            return

        if epoch != self._epoch:
            logger.debug("default_business_update_stale", business_id=business_id, epoch=epoch)
            return
        self._memberships = [
            m.model_copy(update={"is_default": m.business_id == business_id})
            for m in self._memberships
        ]
        if self._active is not None:
            self._active = next(
                (m for m in self._memberships if m.business_id == self._active.business_id),
                self._active,
            )

    def reset(self, epoch: int, forget: bool = True) -> None:
        """Drop all tenant state; with ``forget`` also erase the persisted selection."""
        if forget and self._scope is not None:
            self._store.delete(self._scope)
        self._epoch = epoch
        self._scope = None
        self._memberships = []
        self._active = None

    async def drain(self) -> None:
        """Wait for in-flight default-flag updates (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
