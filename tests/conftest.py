"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable

import pytest
from httpx import ASGITransport, AsyncClient

from frontdesk.config.settings import Settings
from frontdesk.identity.memory import AccountDirectory, InMemoryIdentityProvider
from frontdesk.identity.provider import IdentityProvider
from frontdesk.identity.store import IdentitySessionStore
from frontdesk.models.domain import Business, BusinessMembership
from frontdesk.session.context import SessionContext
from frontdesk.tenancy.backend import InMemoryBusinessBackend
from frontdesk.tenancy.loader import MembershipLoader
from frontdesk.tenancy.selection import TenantSelectionPolicy
from frontdesk.tenancy.selection_store import InMemorySelectionStore
from frontdesk.types import MembershipRole, ProfileRole
from frontdesk.web.app import create_app

PASSWORD = "s3cret-pass"


def make_business(business_id: str, name: str | None = None) -> Business:
    return Business(id=business_id, slug=f"slug-{business_id}", name=name or f"Biz {business_id}")


def make_membership(
    business_id: str,
    role: MembershipRole = MembershipRole.OWNER,
    is_default: bool = False,
) -> BusinessMembership:
    return BusinessMembership(role=role, is_default=is_default, business=make_business(business_id))


@pytest.fixture()
def membership() -> Callable[..., BusinessMembership]:
    return make_membership


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        secret_key="test-secret",
        identity_mode="memory",
        membership_timeout_seconds=0.3,
        membership_retry_attempts=1,
        membership_retry_delay_ms=0,
        guard_wait_seconds=1.0,
        seed_demo_data=False,
    )


@pytest.fixture()
def directory() -> AccountDirectory:
    return AccountDirectory()


@pytest.fixture()
def backend() -> InMemoryBusinessBackend:
    return InMemoryBusinessBackend()


@pytest.fixture()
def selection_store() -> InMemorySelectionStore:
    return InMemorySelectionStore()


@pytest.fixture()
def make_context(
    directory: AccountDirectory,
    backend: InMemoryBusinessBackend,
    selection_store: InMemorySelectionStore,
) -> Callable[..., SessionContext]:
    """Build isolated session contexts sharing one directory, backend and store."""

    def _make(
        client_id: str = "device-1",
        timeout: float = 0.3,
        session_ttl: float = 3600,
        provider: IdentityProvider | None = None,
    ) -> SessionContext:
        if provider is None:
            provider = InMemoryIdentityProvider(directory, session_ttl=session_ttl)
        identity = IdentitySessionStore(provider)
        loader = MembershipLoader(
            backend, timeout_seconds=timeout, retry_attempts=1, retry_delay_ms=0
        )
        return SessionContext(
            identity=identity,
            loader=loader,
            policy=TenantSelectionPolicy(selection_store, backend),
            client_id=client_id,
        )

    return _make


@pytest.fixture()
def app(test_settings, directory, backend, selection_store):
    """Create a fresh app instance wired to in-memory collaborators."""
    return create_app(
        settings=test_settings,
        directory=directory,
        backend=backend,
        selection_store=selection_store,
    )


@pytest.fixture()
async def client(app):
    """An AsyncClient that keeps the browser identity cookies between requests."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as http:
        yield http


@pytest.fixture()
def accounts(directory, backend) -> dict[str, str]:
    """Owner of b1 (default) and b2, a staff member of b1, a client and a new owner."""
    owner = directory.add_account("owner@example.com", PASSWORD, role=ProfileRole.OWNER)
    backend.add_membership(owner.id, make_membership("b1", is_default=True))
    backend.add_membership(owner.id, make_membership("b2"))
    staff = directory.add_account("staff@example.com", PASSWORD, role=ProfileRole.OWNER)
    backend.add_membership(staff.id, make_membership("b1", role=MembershipRole.STAFF))
    client = directory.add_account("client@example.com", PASSWORD, role=ProfileRole.CLIENT)
    new_owner = directory.add_account("new@example.com", PASSWORD, role=ProfileRole.OWNER)
    return {"owner": owner.id, "staff": staff.id, "client": client.id, "new": new_owner.id}


@pytest.fixture()
def login(client: AsyncClient):
    """Sign the test browser in through the JSON login API."""

    async def _login(email: str, **extra: object):
        payload = {"email": email, "password": PASSWORD, **extra}
        return await client.post("/api/auth/login", json=payload)

    return _login
