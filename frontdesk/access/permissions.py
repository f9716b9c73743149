"""Role-based permissions inside a business."""

from __future__ import annotations

from typing import TYPE_CHECKING

from frontdesk.models.domain import NavLink
from frontdesk.types import MembershipRole, Permission

if TYPE_CHECKING:
    from collections.abc import Iterable

ROLE_PERMISSIONS: dict[MembershipRole, frozenset[Permission]] = {
    MembershipRole.OWNER: frozenset(Permission),
    MembershipRole.STAFF: frozenset(
        {
            Permission.VIEW_DASHBOARD,
            Permission.VIEW_LEADS,
            Permission.VIEW_CALENDAR,
            Permission.VIEW_LOGS,
        }
    ),
}

PAGE_PERMISSIONS: dict[str, Permission] = {
    "/dashboard": Permission.VIEW_DASHBOARD,
    "/dashboard/leads": Permission.VIEW_LEADS,
    "/dashboard/calendar": Permission.VIEW_CALENDAR,
    "/dashboard/logs": Permission.VIEW_LOGS,
    "/dashboard/settings": Permission.VIEW_SETTINGS,
    "/dashboard/team": Permission.VIEW_TEAM,
}

DASHBOARD_LINKS: tuple[NavLink, ...] = (
    NavLink(label="Dashboard", href="/dashboard", permission=Permission.VIEW_DASHBOARD),
    NavLink(label="Leads", href="/dashboard/leads", permission=Permission.VIEW_LEADS),
    NavLink(label="Calendar", href="/dashboard/calendar", permission=Permission.VIEW_CALENDAR),
    NavLink(label="Team", href="/dashboard/team", permission=Permission.VIEW_TEAM),
    NavLink(label="Settings", href="/dashboard/settings", permission=Permission.VIEW_SETTINGS),
    NavLink(label="Logs", href="/dashboard/logs", permission=Permission.VIEW_LOGS),
)


def _as_role(role: MembershipRole | str | None) -> MembershipRole | None:
    if role is None:
        return None
    try:
        return MembershipRole(role)
    except ValueError:
        return None


def has_permission(role: MembershipRole | str | None, permission: Permission | str) -> bool:
    """True when ``role`` grants ``permission``. Unknown or missing roles grant nothing."""
    resolved = _as_role(role)
    if resolved is None:
        return False
    return permission in ROLE_PERMISSIONS.get(resolved, frozenset())


def can_access_page(role: MembershipRole | str | None, path: str) -> bool:
    """Pages without a listed permission are open to every member."""
    required = PAGE_PERMISSIONS.get(path.rstrip("/") or "/")
    if required is None:
        return True
    return has_permission(role, required)


def unauthorized_redirect() -> str:
    """Where a member lands after hitting a page their role cannot see.

    Every membership role can view the dashboard home, so the target is the same for all.
    """
    return "/dashboard"


def filter_authorized_links(
    role: MembershipRole | str | None, links: Iterable[NavLink]
) -> list[NavLink]:
    """Keep links the role may see; links without a permission are always kept."""
    return [link for link in links if link.permission is None or has_permission(role, link.permission)]
