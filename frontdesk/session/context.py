"""Per-browser session context: identity, memberships and active business.

One SessionContext is built per browser session and torn down on sign-out
or eviction. It is the only place that sequences the identity store, the
membership loader and the selection policy; pages read it through
``snapshot()`` and the guard reads it through ``route_state()``.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from frontdesk.access.permissions import filter_authorized_links, has_permission
from frontdesk.access.routing import (
    DEFAULT_ROUTES,
    PostAuthDecision,
    RouteState,
    navbar_links,
    resolve_post_auth_redirect,
)
from frontdesk.exceptions import TenantNotFoundError
from frontdesk.models.domain import SessionSnapshot
from frontdesk.tenancy.loader import late_memberships
from frontdesk.tenancy.selection_store import selection_scope
from frontdesk.types import AuthEvent, LoadState, ProfileRole

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from frontdesk.access.routing import RouteTable
    from frontdesk.identity.store import IdentitySessionStore
    from frontdesk.models.domain import (
        Business,
        BusinessMembership,
        NavLink,
        Profile,
        Session,
        SignUpResult,
        User,
    )
    from frontdesk.tenancy.loader import MembershipLoader, MembershipLoadResult
    from frontdesk.tenancy.selection import TenantSelectionPolicy
    from frontdesk.types import MembershipRole, Permission

logger = structlog.get_logger(__name__)


class SessionContext:
    """Role-aware tenant state for one browser session.

    Every load is tagged with the epoch current when it started. Sign-in,
    sign-out and refresh each start a new epoch, and results tagged with an
    older epoch are dropped.
    """

    def __init__(
        self,
        identity: IdentitySessionStore,
        loader: MembershipLoader,
        policy: TenantSelectionPolicy,
        client_id: str,
        routes: RouteTable = DEFAULT_ROUTES,
        marketplace_enabled: bool = False,
    ) -> None:
        self._identity = identity
        self._loader = loader
        self._policy = policy
        self._client_id = client_id
        self._routes = routes
        self._marketplace_enabled = marketplace_enabled

        self._epoch = 0
        self._session: Session | None = None
        self._user: User | None = None
        self._profile: Profile | None = None
        self._identity_resolved = False
        self._business_state = LoadState.IDLE
        self._settled = asyncio.Event()
        self._tasks: set[asyncio.Task[Any]] = set()
        self._unsubscribe: Callable[[], None] | None = None
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to auth changes and begin resolving the current session."""
        if self._started:
            return
        self._started = True
        self._unsubscribe = self._identity.subscribe(self._on_auth_change)
        session = await self._identity.get_current_session()
        if self._closed or self._user is not None:
            return
        if session is None:
            self._mark_signed_out()
        else:
            self._begin_resolution(session)

    async def close(self) -> None:
        """Tear down: stop listening and invalidate everything in flight."""
        if self._closed:
            return
        self._closed = True
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._epoch += 1
        for task in list(self._tasks):
            task.cancel()
        self._settled.set()
        await self._identity.close()

    async def revalidate(self) -> None:
        """Re-read the stored session so expiry and token refresh take effect.

        Expiry arrives as SIGNED_OUT and a refresh as TOKEN_REFRESHED through
        the auth listener. An unreachable provider leaves the session as is.
        """
        if self._closed or self._session is None:
            return
        session = await self._identity.get_current_session()
        if self._identity.last_error is not None or self._user is None:
            return
        if session is None:
            logger.info("session_no_longer_valid", user_id=self._user.id)
            self._handle_signed_out()
        elif session.user.id != self._user.id:
            self._begin_resolution(session)
        else:
            self._session = session

    async def wait_settled(self, timeout: float | None = None) -> bool:
        """Wait until identity and memberships are resolved. False on timeout."""
        if self._settled.is_set():
            return True
        try:
            await asyncio.wait_for(self._settled.wait(), timeout)
        except TimeoutError:
            return False
        return True

    # ------------------------------------------------------------------
    # Auth events
    # ------------------------------------------------------------------

    def _on_auth_change(self, event: AuthEvent, session: Session | None) -> None:
        if self._closed:
            return
        if event == AuthEvent.SIGNED_IN and session is not None:
            self._begin_resolution(session)
        elif event == AuthEvent.SIGNED_OUT:
            self._handle_signed_out()
        elif event in (AuthEvent.TOKEN_REFRESHED, AuthEvent.USER_UPDATED) and session is not None:
            if self._user is not None and session.user.id == self._user.id:
                self._session = session
                self._user = session.user

    def _begin_resolution(self, session: Session) -> None:
        self._epoch += 1
        epoch = self._epoch
        if self._user is not None and self._user.id != session.user.id:
            self._policy.reset(epoch, forget=False)
        self._session = session
        self._user = session.user
        self._profile = None
        self._identity_resolved = False
        self._business_state = LoadState.LOADING
        self._settled.clear()
        logger.info("session_resolution_started", user_id=session.user.id, epoch=epoch)
        self._spawn(self._resolve(session, epoch))

    def _handle_signed_out(self) -> None:
        self._epoch += 1
        user_id = self._user.id if self._user else None
        self._policy.reset(self._epoch, forget=True)
        self._mark_signed_out()
        if user_id is not None:
            logger.info("session_cleared", user_id=user_id, epoch=self._epoch)

    def _mark_signed_out(self) -> None:
        self._session = None
        self._user = None
        self._profile = None
        self._identity_resolved = True
        self._business_state = LoadState.IDLE
        self._settled.set()

    def _spawn(self, coro: Any) -> None:
        self._track(asyncio.get_running_loop().create_task(coro))

    def _track(self, task: asyncio.Task[Any]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve(self, session: Session, epoch: int) -> None:
        try:
            profile = await self._load_profile(session.user.id)
            if epoch != self._epoch:
                logger.debug("stale_profile_discarded", epoch=epoch, current=self._epoch)
                return
            self._profile = profile
            self._identity_resolved = True

            result = await self._loader.load(session.user.id, session.access_token, epoch)
            if epoch != self._epoch:
                logger.debug("stale_memberships_discarded", epoch=epoch, current=self._epoch)
                if result.pending is not None:
                    self._track(result.pending)
                    result.pending.add_done_callback(late_memberships)
                return
            self._apply(result)
        except Exception:
            logger.exception("session_resolution_failed", epoch=epoch)
            if epoch == self._epoch:
                self._identity_resolved = True
                self._policy.apply(
                    self._scope(session.user.id), [], epoch, forget_when_empty=False
                )
                self._business_state = LoadState.FAILED
                self._settled.set()

    async def _load_profile(self, user_id: str) -> Profile | None:
        try:
            return await asyncio.wait_for(
                self._identity.get_profile(user_id), self._loader.timeout_seconds
            )
        except TimeoutError:
            logger.warning("profile_lookup_timed_out", user_id=user_id)
            return None

    def _scope(self, user_id: str) -> str:
        return selection_scope(self._client_id, user_id)

    def _apply(self, result: MembershipLoadResult) -> None:
        self._policy.apply(
            self._scope(result.user_id),
            result.memberships,
            result.epoch,
            forget_when_empty=result.state == LoadState.EMPTY,
        )
        self._business_state = result.state
        self._settled.set()
        if result.pending is not None:
            self._track(result.pending)
            result.pending.add_done_callback(
                lambda task: self._apply_late(task, result.epoch, result.user_id)
            )

    def _apply_late(
        self, task: asyncio.Task[list[BusinessMembership]], epoch: int, user_id: str
    ) -> None:
        memberships = late_memberships(task)
        if epoch != self._epoch:
            logger.debug("late_memberships_discarded", epoch=epoch, current=self._epoch)
            return
        if memberships is None:
            return
        self._policy.apply(self._scope(user_id), memberships, epoch)
        self._business_state = LoadState.LOADED if memberships else LoadState.EMPTY
        logger.info("late_memberships_applied", user_id=user_id, count=len(memberships))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def refresh_memberships(self) -> None:
        """Re-fetch memberships for the signed-in user (e.g. after onboarding)."""
        if self._session is None or self._user is None or not self._identity_resolved:
            return
        self._epoch += 1
        epoch = self._epoch
        self._business_state = LoadState.LOADING
        self._settled.clear()
        result = await self._loader.load(self._user.id, self._session.access_token, epoch)
        if epoch != self._epoch:
            return
        self._apply(result)

    async def sign_in(
        self,
        email: str,
        password: str,
        role_hint: ProfileRole | None = None,
        next_path: str | None = None,
    ) -> PostAuthDecision:
        """Sign in and compute the initial redirect. AuthenticationError propagates."""
        session = await self._identity.sign_in(email, password)
        if self._user is None or self._user.id != session.user.id:
            self._begin_resolution(session)
        await self.wait_settled(self._loader.timeout_seconds * 2)
        return self.post_auth_decision(role_hint, next_path)

    async def sign_up(
        self,
        email: str,
        password: str,
        role: ProfileRole,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[SignUpResult, PostAuthDecision | None]:
        """Create an account. The decision is None while email confirmation is pending."""
        result = await self._identity.sign_up(
            email, password, {**(metadata or {}), "role": role.value}
        )
        if result.session is None:
            return result, None
        if self._user is None or self._user.id != result.session.user.id:
            self._begin_resolution(result.session)
        await self.wait_settled(self._loader.timeout_seconds * 2)
        return result, self.post_auth_decision(role_hint=role)

    async def sign_out(self) -> None:
        await self._identity.sign_out()
        if self._user is not None:
            self._handle_signed_out()

    def switch_business(self, business_id: str) -> Business:
        if self._session is None or self._user is None:
            msg = "No signed-in user"
            raise TenantNotFoundError(msg)
        membership = self._policy.switch_tenant(
            business_id, user_id=self._user.id, access_token=self._session.access_token
        )
        return membership.business

    def post_auth_decision(
        self, role_hint: ProfileRole | None = None, next_path: str | None = None
    ) -> PostAuthDecision:
        return resolve_post_auth_redirect(
            profile_role=self.role,
            has_active_tenant=self.current_business is not None,
            role_hint=role_hint,
            next_path=next_path,
            routes=self._routes,
        )

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def routes(self) -> RouteTable:
        return self._routes

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def current_user(self) -> User | None:
        return self._user

    @property
    def profile(self) -> Profile | None:
        return self._profile

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def role(self) -> ProfileRole | None:
        return self._profile.role if self._profile else None

    @property
    def business_role(self) -> MembershipRole | None:
        active = self._policy.active
        return active.role if active else None

    @property
    def current_business(self) -> Business | None:
        return self._policy.active_business

    @property
    def businesses(self) -> list[Business]:
        return [m.business for m in self._policy.memberships]

    @property
    def memberships(self) -> list[BusinessMembership]:
        return self._policy.memberships

    @property
    def loading(self) -> bool:
        return not self._identity_resolved

    @property
    def business_loading(self) -> bool:
        return self._business_state == LoadState.LOADING

    @property
    def business_state(self) -> LoadState:
        return self._business_state

    @property
    def settled(self) -> bool:
        return not self.loading and not self.business_loading

    @property
    def identity_error(self) -> str | None:
        return self._identity.last_error

    def has_permission(self, permission: Permission | str) -> bool:
        return has_permission(self.business_role, permission)

    def get_authorized_links(self, links: Iterable[NavLink]) -> list[NavLink]:
        return filter_authorized_links(self.business_role, links)

    def route_state(self, path: str) -> RouteState:
        return RouteState(
            is_authenticated=self.is_authenticated,
            role=self.role,
            has_active_tenant=self.current_business is not None,
            requested_path=path,
        )

    def navbar_links(self) -> list[NavLink]:
        return navbar_links(
            is_authenticated=self.is_authenticated,
            role=self.role,
            has_business=self.current_business is not None,
            current_business=self.current_business,
            marketplace_enabled=self._marketplace_enabled,
        )

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            current_user=self._user,
            role=self.role,
            business_role=self.business_role,
            current_business=self.current_business,
            businesses=self.businesses,
            loading=self.loading,
            business_loading=self.business_loading,
            identity_error=self.identity_error,
        )
