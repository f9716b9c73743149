"""Enums and type aliases for FrontDesk."""

from enum import StrEnum


class AuthEvent(StrEnum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"


class ProfileRole(StrEnum):
    """System-wide identity role stored on the profile row."""

    OWNER = "owner"
    CLIENT = "client"


class MembershipRole(StrEnum):
    """Role a user holds inside one business."""

    OWNER = "owner"
    STAFF = "staff"


class Permission(StrEnum):
    VIEW_DASHBOARD = "view_dashboard"
    VIEW_LEADS = "view_leads"
    VIEW_CALENDAR = "view_calendar"
    VIEW_LOGS = "view_logs"
    VIEW_SETTINGS = "view_settings"
    EDIT_SETTINGS = "edit_settings"
    VIEW_TEAM = "view_team"
    INVITE_TEAM = "invite_team"
    REMOVE_TEAM = "remove_team"
    EDIT_BUSINESS = "edit_business"
    DELETE_BUSINESS = "delete_business"


class LoadState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    EMPTY = "empty"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


class GuardStatus(StrEnum):
    LOADING = "loading"
    RENDER = "render"
    REDIRECT = "redirect"
