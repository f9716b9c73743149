"""Seed data for memory mode: demo accounts and businesses."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from frontdesk.config.settings import DEMO_BUSINESS_ID
from frontdesk.models.domain import Business, BusinessMembership
from frontdesk.types import MembershipRole, ProfileRole

if TYPE_CHECKING:
    from frontdesk.identity.memory import AccountDirectory
    from frontdesk.tenancy.backend import InMemoryBusinessBackend

logger = structlog.get_logger(__name__)

DEMO_PASSWORD = "demo-password"  # nosec B105
DEMO_OWNER_EMAIL = "owner@demo.frontdesk.test"
DEMO_STAFF_EMAIL = "staff@demo.frontdesk.test"
DEMO_CLIENT_EMAIL = "client@demo.frontdesk.test"

DEMO_BUSINESS = Business(
    id=DEMO_BUSINESS_ID,
    slug="demo-plumbing",
    name="Demo Plumbing",
    phone="+1-555-0100",
    industry="plumbing",
    service_zip_codes=["77005", "77004", "77006"],
    subscription_tier="starter",
)

SECOND_DEMO_BUSINESS = Business(
    id="00000000-0000-0000-0000-000000000002",
    slug="elite-auto-detail",
    name="Elite Auto Detailing",
    industry="auto_detailing",
    service_zip_codes=["77019", "77098"],
)


def seed_demo_data(directory: AccountDirectory, backend: InMemoryBusinessBackend) -> None:
    """Create an owner of two businesses, a staff member and a client."""
    owner = directory.add_account(DEMO_OWNER_EMAIL, DEMO_PASSWORD, role=ProfileRole.OWNER)
    staff = directory.add_account(DEMO_STAFF_EMAIL, DEMO_PASSWORD, role=ProfileRole.OWNER)
    directory.add_account(DEMO_CLIENT_EMAIL, DEMO_PASSWORD, role=ProfileRole.CLIENT)

    backend.add_membership(
        owner.id,
        BusinessMembership(role=MembershipRole.OWNER, is_default=True, business=DEMO_BUSINESS),
    )
    backend.add_membership(
        owner.id, BusinessMembership(role=MembershipRole.OWNER, business=SECOND_DEMO_BUSINESS)
    )
    backend.add_membership(
        staff.id,
        BusinessMembership(role=MembershipRole.STAFF, is_default=True, business=DEMO_BUSINESS),
    )
    logger.info("demo_data_seeded", businesses=len(backend.businesses))
