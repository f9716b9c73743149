"""Post-auth route resolution: which page a visitor may see, or where to send them.

Everything here is pure: identical inputs always give identical decisions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from frontdesk.exceptions import RoleMismatchError
from frontdesk.models.domain import NavLink
from frontdesk.types import ProfileRole

if TYPE_CHECKING:
    from frontdesk.models.domain import Business

logger = structlog.get_logger(__name__)

LOGIN_PATH = "/login"
ONBOARDING_PATH = "/onboarding"
DASHBOARD_PATH = "/dashboard"
CLIENT_HOME_PATH = "/client"
LANDING_PATH = "/"

_AUTH_PAGES = frozenset({LOGIN_PATH, "/signup", "/owner-signup", "/logout"})

CLIENT_ON_OWNER_PAGE_MESSAGE = (
    "You're signed in as a customer. Business owners should use the owner dashboard."
)
OWNER_ON_CLIENT_PAGE_MESSAGE = (
    "You're signed in as a business owner. Use the dashboard to manage your business."
)


@dataclass(frozen=True, slots=True)
class RouteTable:
    """Path sets the resolver matches against.

    Prefixes ending in "/" match any path under them; other prefixes match
    the path itself or any sub-path (``/dashboard`` matches ``/dashboard/leads``
    but not ``/dashboards``).
    """

    public_paths: frozenset[str] = field(
        default_factory=lambda: frozenset(
            {
                LANDING_PATH,
                LOGIN_PATH,
                "/signup",
                "/owner-signup",
                "/directory",
                "/demo-chat",
                "/demo-chat/customer",
                "/demo-chat/owner",
                "/logout",
            }
        )
    )
    public_prefixes: tuple[str, ...] = ("/b/", "/static/")
    owner_prefixes: tuple[str, ...] = (DASHBOARD_PATH, ONBOARDING_PATH)
    client_prefixes: tuple[str, ...] = (CLIENT_HOME_PATH,)


def build_route_table(marketplace_enabled: bool = False) -> RouteTable:
    table = RouteTable()
    if not marketplace_enabled:
        return table
    return RouteTable(public_paths=table.public_paths | {"/marketplace"})


DEFAULT_ROUTES = RouteTable()


@dataclass(frozen=True, slots=True)
class RouteState:
    is_authenticated: bool
    role: ProfileRole | None
    has_active_tenant: bool
    requested_path: str
    # Only set right after a sign-in/sign-up action, never on ambient navigation
    role_hint: ProfileRole | None = None

    @property
    def effective_role(self) -> ProfileRole | None:
        return self.role_hint or self.role


def normalize_path(path: str) -> str:
    """Drop query string, fragment and trailing slash."""
    path = path.split("#", 1)[0].split("?", 1)[0] or LANDING_PATH
    if not path.startswith("/"):
        path = "/" + path
    if len(path) > 1:
        path = path.rstrip("/") or LANDING_PATH
    return path


def _matches(path: str, prefix: str) -> bool:
    if prefix.endswith("/"):
        return path.startswith(prefix)
    return path == prefix or path.startswith(prefix + "/")


def _matches_any(path: str, prefixes: tuple[str, ...]) -> bool:
    return any(_matches(path, prefix) for prefix in prefixes)


def is_public(path: str, routes: RouteTable = DEFAULT_ROUTES) -> bool:
    path = normalize_path(path)
    return path in routes.public_paths or _matches_any(path, routes.public_prefixes)


def home_route(role: ProfileRole | str | None, has_business: bool = True) -> str:
    """The page a role lands on by default."""
    if role == ProfileRole.OWNER:
        return DASHBOARD_PATH if has_business else ONBOARDING_PATH
    if role == ProfileRole.CLIENT:
        return CLIENT_HOME_PATH
    return LANDING_PATH


def resolve_redirect(state: RouteState, routes: RouteTable = DEFAULT_ROUTES) -> str | None:
    """Return the redirect target for ``state``, or None to allow the page.

    First matching rule wins:
      1. public paths are always allowed
      2. anonymous visitors go to login
      3. owners without an active business go to onboarding
      4. owners with a business may open owner pages
      5. owners on client pages go to their home
      6. clients on owner pages go to the client home
      7. a missing role goes to the landing page
      8. everything else is allowed
    """
    path = normalize_path(state.requested_path)
    role = state.effective_role

    if is_public(path, routes):
        return None
    if not state.is_authenticated:
        return LOGIN_PATH
    if role == ProfileRole.OWNER:
        if not state.has_active_tenant and not _matches(path, ONBOARDING_PATH):
            return ONBOARDING_PATH
        if state.has_active_tenant and _matches_any(path, routes.owner_prefixes):
            return None
        if _matches_any(path, routes.client_prefixes):
            return home_route(role, state.has_active_tenant)
        return None
    if role == ProfileRole.CLIENT:
        if _matches_any(path, routes.owner_prefixes):
            return CLIENT_HOME_PATH
        return None
    return LANDING_PATH


def redirect_message(state: RouteState, routes: RouteTable = DEFAULT_ROUTES) -> str | None:
    """User-facing explanation when a redirect is caused by the wrong role."""
    if not state.is_authenticated:
        return None
    path = normalize_path(state.requested_path)
    role = state.effective_role
    if role == ProfileRole.CLIENT and _matches_any(path, routes.owner_prefixes):
        return CLIENT_ON_OWNER_PAGE_MESSAGE
    if role == ProfileRole.OWNER and _matches_any(path, routes.client_prefixes):
        return OWNER_ON_CLIENT_PAGE_MESSAGE
    return None


@dataclass(frozen=True, slots=True)
class PostAuthDecision:
    """Where to send a user right after signing in or up."""

    target: str
    role: ProfileRole | None
    mismatch: RoleMismatchError | None = None


def resolve_post_auth_redirect(
    profile_role: ProfileRole | None,
    has_active_tenant: bool,
    role_hint: ProfileRole | None = None,
    next_path: str | None = None,
    routes: RouteTable = DEFAULT_ROUTES,
) -> PostAuthDecision:
    """Compute the initial redirect after an auth action.

    ``role_hint`` (the form the user signed in through) wins over the stored
    profile role for this one decision. It is never written back; when the two
    disagree the decision carries a RoleMismatchError for the caller to show.
    """
    mismatch: RoleMismatchError | None = None
    if role_hint is not None and profile_role is not None and role_hint != profile_role:
        logger.warning("role_hint_mismatch", role_hint=str(role_hint), profile_role=str(profile_role))
        mismatch = RoleMismatchError(
            f"This account is registered as {profile_role.value}, not {role_hint.value}."
        )

    role = role_hint or profile_role
    target = home_route(role, has_active_tenant)
    if next_path and role is not None:
        candidate = normalize_path(next_path)
        state = RouteState(
            is_authenticated=True,
            role=profile_role,
            has_active_tenant=has_active_tenant,
            requested_path=candidate,
            role_hint=role_hint,
        )
        if candidate not in _AUTH_PAGES and resolve_redirect(state, routes) is None:
            target = candidate
    return PostAuthDecision(target=target, role=role, mismatch=mismatch)


def navbar_links(
    is_authenticated: bool,
    role: ProfileRole | None,
    has_business: bool,
    current_business: Business | None = None,
    marketplace_enabled: bool = False,
) -> list[NavLink]:
    """Top navigation for the current identity."""
    if not is_authenticated:
        links = [NavLink(label="Home", href=LANDING_PATH)]
        if marketplace_enabled:
            links.append(NavLink(label="Marketplace", href="/marketplace"))
        links += [
            NavLink(label="About", href="/#about"),
            NavLink(label="Login", href=LOGIN_PATH),
            NavLink(label="For Business Owners", href="/owner-signup", is_cta=True),
        ]
        return links

    if role == ProfileRole.OWNER:
        links = [NavLink(label="Dashboard", href=DASHBOARD_PATH)]
        if has_business and current_business is not None and current_business.slug:
            links.append(
                NavLink(label="Public Page", href=f"/b/{current_business.slug}", icon="external")
            )
        links += [
            NavLink(label="Settings", href="/dashboard/settings"),
            NavLink(label="Logout", kind="button"),
        ]
        return links

    if role == ProfileRole.CLIENT:
        links = [NavLink(label="Home", href=CLIENT_HOME_PATH)]
        if marketplace_enabled:
            links.append(NavLink(label="Marketplace", href="/marketplace"))
        links.append(NavLink(label="Logout", kind="button"))
        return links

    return [NavLink(label="Home", href=LANDING_PATH), NavLink(label="Logout", kind="button")]
