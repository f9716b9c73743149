"""Unit tests for active-business selection and switching."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from frontdesk.exceptions import TenantNotFoundError
from frontdesk.tenancy.backend import InMemoryBusinessBackend
from frontdesk.tenancy.selection import TenantSelectionPolicy, select_active_tenant
from frontdesk.tenancy.selection_store import InMemorySelectionStore
from frontdesk.types import MembershipRole

SCOPE = "device-1:user-1"


@pytest.mark.unit
class TestSelectActiveTenant:
    def test_empty_set_returns_none(self) -> None:
        assert select_active_tenant([], None) is None
        assert select_active_tenant([], "b1") is None

    def test_persisted_id_wins(self, membership) -> None:
        members = [membership("b1", is_default=True), membership("b2")]
        assert select_active_tenant(members, "b2").business_id == "b2"

    def test_default_used_when_nothing_persisted(self, membership) -> None:
        members = [membership("b1"), membership("b2", is_default=True)]
        assert select_active_tenant(members, None).business_id == "b2"

    def test_first_used_without_default(self, membership) -> None:
        members = [membership("b1"), membership("b2")]
        assert select_active_tenant(members, None).business_id == "b1"

    def test_removed_persisted_business_falls_back_to_default(self, membership) -> None:
        members = [membership("b1", is_default=True)]
        assert select_active_tenant(members, "removed").business_id == "b1"

    def test_result_is_always_a_member(self, membership) -> None:
        ids = ["b1", "b2", "b3"]
        for size in range(1, 4):
            for default_idx in [None, *range(size)]:
                members = [
                    membership(bid, is_default=(i == default_idx))
                    for i, bid in enumerate(ids[:size])
                ]
                for persisted in [None, "zz", *ids]:
                    chosen = select_active_tenant(members, persisted)
                    assert chosen in members
                    if persisted in ids[:size]:
                        assert chosen.business_id == persisted

    def test_first_default_wins_when_several(self, membership) -> None:
        members = [membership("b1"), membership("b2", is_default=True), membership("b3", is_default=True)]
        assert select_active_tenant(members, None).business_id == "b2"


@pytest.mark.unit
class TestTenantSelectionPolicyApply:
    def test_apply_persists_choice(self, membership) -> None:
        store = InMemorySelectionStore()
        policy = TenantSelectionPolicy(store, InMemoryBusinessBackend())
        chosen = policy.apply(SCOPE, [membership("b1"), membership("b2", is_default=True)], 1)
        assert chosen.business_id == "b2"
        assert store.get(SCOPE) == "b2"
        assert policy.active_business.id == "b2"

    def test_apply_empty_clears_persisted(self) -> None:
        store = InMemorySelectionStore()
        store.set(SCOPE, "b1")
        policy = TenantSelectionPolicy(store, InMemoryBusinessBackend())
        assert policy.apply(SCOPE, [], 1) is None
        assert store.get(SCOPE) is None
        assert policy.active is None

    def test_apply_empty_can_keep_persisted(self) -> None:
        store = InMemorySelectionStore()
        store.set(SCOPE, "b1")
        policy = TenantSelectionPolicy(store, InMemoryBusinessBackend())
        policy.apply(SCOPE, [], 1, forget_when_empty=False)
        assert store.get(SCOPE) == "b1"
        assert policy.active is None

    def test_stale_persisted_id_is_overwritten(self, membership) -> None:
        store = InMemorySelectionStore()
        store.set(SCOPE, "gone")
        policy = TenantSelectionPolicy(store, InMemoryBusinessBackend())
        policy.apply(SCOPE, [membership("b1", is_default=True)], 1)
        assert store.get(SCOPE) == "b1"

    def test_unchanged_selection_is_not_rewritten(self, membership) -> None:
        store = MagicMock(wraps=InMemorySelectionStore())
        store.get.return_value = "b1"
        policy = TenantSelectionPolicy(store, InMemoryBusinessBackend())
        policy.apply(SCOPE, [membership("b1")], 1)
        store.set.assert_not_called()

    def test_scopes_do_not_leak(self, membership) -> None:
        store = InMemorySelectionStore()
        store.set("device-1:user-a", "b2")
        policy = TenantSelectionPolicy(store, InMemoryBusinessBackend())
        chosen = policy.apply("device-1:user-b", [membership("b1"), membership("b2")], 1)
        assert chosen.business_id == "b1"

    def test_no_selectable_membership_clears_active(self, membership, monkeypatch) -> None:
        store = InMemorySelectionStore()
        policy = TenantSelectionPolicy(store, InMemoryBusinessBackend())
        policy.apply(SCOPE, [membership("b1")], 1)
        monkeypatch.setattr(
            "frontdesk.tenancy.selection.select_active_tenant", lambda members, persisted: None
        )
        assert policy.apply(SCOPE, [membership("b2")], 2) is None
        assert policy.active is None
        assert store.get(SCOPE) == "b1"


@pytest.mark.unit
class TestSwitchTenant:
    def _policy(self, membership):
        store = InMemorySelectionStore()
        backend = InMemoryBusinessBackend()
        members = [membership("b1", is_default=True), membership("b2")]
        for m in members:
            backend.add_membership("user-1", m)
        policy = TenantSelectionPolicy(store, backend)
        policy.apply(SCOPE, members, 1)
        return policy, store, backend

    @pytest.mark.asyncio
    async def test_switch_updates_local_state_synchronously(self, membership) -> None:
        policy, store, _ = self._policy(membership)
        policy.switch_tenant("b2", user_id="user-1", access_token="t")
        assert policy.active_business.id == "b2"
        assert store.get(SCOPE) == "b2"
        await policy.drain()

    @pytest.mark.asyncio
    async def test_switch_updates_remote_default(self, membership) -> None:
        policy, _, backend = self._policy(membership)
        policy.switch_tenant("b2", user_id="user-1", access_token="t")
        await policy.drain()
        defaults = {m.business_id: m.is_default for m in backend.memberships_of("user-1")}
        assert defaults == {"b1": False, "b2": True}
        assert {m.business_id: m.is_default for m in policy.memberships} == defaults

    @pytest.mark.asyncio
    async def test_switch_to_non_member_raises(self, membership) -> None:
        policy, store, _ = self._policy(membership)
        with pytest.raises(TenantNotFoundError):
            policy.switch_tenant("nope", user_id="user-1", access_token="t")
        assert policy.active_business.id == "b1"
        assert store.get(SCOPE) == "b1"

    @pytest.mark.asyncio
    async def test_switch_is_idempotent(self, membership) -> None:
        policy, store, backend = self._policy(membership)
        policy.switch_tenant("b2", user_id="user-1", access_token="t")
        await policy.drain()
        writes = backend.write_calls
        policy.switch_tenant("b2", user_id="user-1", access_token="t")
        await policy.drain()
        assert policy.active_business.id == "b2"
        assert store.get(SCOPE) == "b2"
        assert backend.write_calls == writes

    @pytest.mark.asyncio
    async def test_remote_failure_does_not_roll_back(self, membership) -> None:
        policy, store, backend = self._policy(membership)
        backend.fail_writes = True
        policy.switch_tenant("b2", user_id="user-1", access_token="t")
        await policy.drain()
        assert policy.active_business.id == "b2"
        assert store.get(SCOPE) == "b2"
        assert backend.write_calls == 1

    @pytest.mark.asyncio
    async def test_remote_update_after_reset_is_ignored(self, membership) -> None:
        policy, _, backend = self._policy(membership)
        gate = asyncio.Event()
        original = backend.set_default_membership

        async def slow_update(*args, **kwargs) -> None:
            await gate.wait()
            await original(*args, **kwargs)

        backend.set_default_membership = slow_update  # type: ignore[method-assign]
        policy.switch_tenant("b2", user_id="user-1", access_token="t")
        policy.reset(epoch=2, forget=False)
        policy.apply(SCOPE, [membership("b1", is_default=True), membership("b2")], 2)
        gate.set()
        await policy.drain()
        local = {m.business_id: m.is_default for m in policy.memberships}
        assert local == {"b1": True, "b2": False}

    def test_switch_without_running_loop_still_switches(self, membership) -> None:
        policy, store, backend = self._policy(membership)
        policy.switch_tenant("b2", user_id="user-1", access_token="t")
        assert store.get(SCOPE) == "b2"
        assert backend.write_calls == 0

    @pytest.mark.asyncio
    async def test_staff_may_hold_default(self, membership) -> None:
        policy, _, backend = self._policy(membership)
        staff = membership("b3", role=MembershipRole.STAFF)
        backend.add_membership("user-1", staff)
        policy.apply(SCOPE, backend.memberships_of("user-1"), 2)
        policy.switch_tenant("b3", user_id="user-1", access_token="t")
        await policy.drain()
        flags = {m.business_id: m.is_default for m in backend.memberships_of("user-1")}
        assert flags["b3"] is True


@pytest.mark.unit
class TestReset:
    def test_reset_forgets_persisted(self, membership) -> None:
        store = InMemorySelectionStore()
        policy = TenantSelectionPolicy(store, InMemoryBusinessBackend())
        policy.apply(SCOPE, [membership("b1")], 1)
        policy.reset(epoch=2)
        assert store.get(SCOPE) is None
        assert policy.memberships == []

    def test_reset_without_forget_keeps_persisted(self, membership) -> None:
        store = InMemorySelectionStore()
        policy = TenantSelectionPolicy(store, InMemoryBusinessBackend())
        policy.apply(SCOPE, [membership("b1")], 1)
        policy.reset(epoch=2, forget=False)
        assert store.get(SCOPE) == "b1"
        assert policy.active is None
