"""Identity and tenant data contracts shared across the session layer."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from frontdesk.types import MembershipRole, Permission, ProfileRole


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str = ""
    user_metadata: dict[str, Any] = {}


class Session(BaseModel):
    """Token material issued by the identity provider."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str = ""
    expires_at: float  # unix seconds
    user: User

    def is_expired(self, now: float | None = None) -> bool:
        return (now if now is not None else time.time()) >= self.expires_at


class Profile(BaseModel):
    id: str
    role: ProfileRole | None = None
    full_name: str | None = None
    email: str | None = None


class Business(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    slug: str
    name: str
    phone: str | None = None
    industry: str | None = None
    service_zip_codes: list[str] = []
    is_active: bool = True
    subscription_tier: str | None = None


class BusinessMembership(BaseModel):
    """One row of the user's membership set, joined with its business."""

    model_config = ConfigDict(frozen=True)

    role: MembershipRole
    is_default: bool = False
    business: Business

    @property
    def business_id(self) -> str:
        return self.business.id


class SignUpResult(BaseModel):
    user: User | None = None
    session: Session | None = None
    email_confirmation_required: bool = False


class NavLink(BaseModel):
    label: str
    href: str | None = None
    permission: Permission | None = None  # None: visible to any signed-in member
    kind: str = "link"  # link | button
    is_cta: bool = False
    icon: str | None = None


class SessionSnapshot(BaseModel):
    """Read-only view of a session context handed to pages and the JSON API."""

    current_user: User | None = None
    role: ProfileRole | None = None
    business_role: MembershipRole | None = None
    current_business: Business | None = None
    businesses: list[Business] = Field(default_factory=list)
    loading: bool = True
    business_loading: bool = False
    identity_error: str | None = None
