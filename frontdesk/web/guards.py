"""Route guards for protected pages.

The guard only adapts: it waits briefly for the session context to settle,
asks the pure resolver for a decision and turns it into render, loading or
a single redirect.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from urllib.parse import urlencode

import structlog

from frontdesk.access.permissions import can_access_page, unauthorized_redirect
from frontdesk.access.routing import (
    DASHBOARD_PATH,
    LOGIN_PATH,
    normalize_path,
    redirect_message,
    resolve_redirect,
)
from frontdesk.types import GuardStatus, ProfileRole

if TYPE_CHECKING:
    from frontdesk.session.context import SessionContext

logger = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class GuardDecision:
    status: GuardStatus
    target: str | None = None
    message: str | None = None
    next_path: str | None = None

    @property
    def location(self) -> str | None:
        """Redirect URL including the explanatory message and return path."""
        if self.target is None:
            return None
        params: dict[str, str] = {}
        if self.message:
            params["message"] = self.message
        if self.next_path:
            params["next"] = self.next_path
        return f"{self.target}?{urlencode(params)}" if params else self.target


RENDER = GuardDecision(status=GuardStatus.RENDER)
LOADING = GuardDecision(status=GuardStatus.LOADING)


class GuardRedirect(Exception):  # noqa: N818 - control flow, not an error
    """Raised by page dependencies to short-circuit into a 303 redirect."""

    def __init__(self, decision: GuardDecision) -> None:
        super().__init__(decision.location)
        self.decision = decision


class GuardPending(Exception):  # noqa: N818 - control flow, not an error
    """Raised by page dependencies while the session context is still resolving."""

    def __init__(self, path: str) -> None:
        super().__init__(path)
        self.path = path


def decide(context: SessionContext, path: str) -> GuardDecision:
    """Synchronous guard decision for the context's current state."""
    if not context.settled:
        return LOADING

    path = normalize_path(path)
    state = context.route_state(path)
    target = resolve_redirect(state, context.routes)

    if target is None:
        if (
            context.role == ProfileRole.OWNER
            and context.current_business is not None
            and (path == DASHBOARD_PATH or path.startswith(DASHBOARD_PATH + "/"))
            and not can_access_page(context.business_role, path)
        ):
            denied = unauthorized_redirect()
            if denied != path:
                logger.info(
                    "page_permission_denied", path=path, business_role=context.business_role
                )
                return GuardDecision(
                    status=GuardStatus.REDIRECT,
                    target=denied,
                    message="You don't have permission to view that page.",
                )
        return RENDER

    if target == path:
        # A target that re-triggers its own redirect would loop
        logger.warning("guard_redirect_loop_suppressed", path=path)
        return RENDER

    return GuardDecision(
        status=GuardStatus.REDIRECT,
        target=target,
        message=redirect_message(state, context.routes),
        next_path=path if target == LOGIN_PATH else None,
    )


async def evaluate(context: SessionContext, path: str, wait_seconds: float) -> GuardDecision:
    """Wait up to ``wait_seconds`` for resolution, then decide."""
    await context.wait_settled(wait_seconds)
    decision = decide(context, path)
    if decision.status == GuardStatus.REDIRECT:
        logger.debug("guard_redirect", path=path, target=decision.target)
    return decision
