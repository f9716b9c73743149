"""Tenant membership loader with a bounded loading window."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from frontdesk.exceptions import BackendError
from frontdesk.types import LoadState
from frontdesk.utils.retry import retry
from frontdesk.utils.timing import timed

if TYPE_CHECKING:
    from frontdesk.models.domain import BusinessMembership
    from frontdesk.tenancy.backend import BusinessBackend

logger = structlog.get_logger(__name__)


@dataclass
class MembershipLoadResult:
    """Outcome of one load, tagged with the session epoch that started it.

    When the timeout wins the race, ``pending`` is the still-running fetch;
    its result may be applied later only if ``epoch`` is still current.
    """

    user_id: str
    epoch: int
    state: LoadState
    memberships: list[BusinessMembership] = field(default_factory=list)
    error: str | None = None
    pending: asyncio.Task[list[BusinessMembership]] | None = None

    @property
    def settled(self) -> bool:
        return self.state not in (LoadState.IDLE, LoadState.LOADING)


def late_memberships(task: asyncio.Task[list[BusinessMembership]]) -> list[BusinessMembership] | None:
    """Return a finished late fetch's memberships, or None if it failed."""
    if task.cancelled():
        return None
    exc = task.exception()
    if exc is not None:
        logger.warning("late_membership_load_failed", error=str(exc))
        return None
    return task.result()


class MembershipLoader:
    """Fetches a user's memberships, never taking longer than ``timeout_seconds``.

    Errors resolve to an empty set; a timeout resolves to an empty set and
    hands the in-flight fetch back as ``pending``.
    """

    def __init__(
        self,
        backend: BusinessBackend,
        timeout_seconds: float = 3.0,
        retry_attempts: int = 2,
        retry_delay_ms: int = 200,
    ) -> None:
        self._backend = backend
        self._timeout = timeout_seconds
        self._fetch = retry(
            max_attempts=retry_attempts,
            delay_ms=retry_delay_ms,
            retry_on=(BackendError,),
        )(backend.list_memberships)

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    async def load(self, user_id: str, access_token: str, epoch: int = 0) -> MembershipLoadResult:
        task = asyncio.ensure_future(self._fetch(user_id, access_token))
        with timed("membership_load", warn_after=self._timeout / 2):
            done, _ = await asyncio.wait({task}, timeout=self._timeout)

        if not done:
            logger.warning(
                "membership_load_timed_out",
                user_id=user_id,
                epoch=epoch,
                timeout_seconds=self._timeout,
            )
            return MembershipLoadResult(
                user_id=user_id, epoch=epoch, state=LoadState.TIMED_OUT, pending=task
            )

        try:
            memberships = task.result()
        except BackendError as exc:
            logger.warning("membership_load_failed", user_id=user_id, epoch=epoch, error=str(exc))
            return MembershipLoadResult(
                user_id=user_id, epoch=epoch, state=LoadState.FAILED, error=str(exc)
            )
        except Exception as exc:
            logger.exception("membership_load_crashed", user_id=user_id, epoch=epoch)
            return MembershipLoadResult(
                user_id=user_id, epoch=epoch, state=LoadState.FAILED, error=str(exc)
            )

        state = LoadState.LOADED if memberships else LoadState.EMPTY
        logger.info("memberships_loaded", user_id=user_id, epoch=epoch, count=len(memberships))
        return MembershipLoadResult(
            user_id=user_id, epoch=epoch, state=state, memberships=list(memberships)
        )
