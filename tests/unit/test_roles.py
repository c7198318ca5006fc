"""Tests for role checks and admin management."""

from __future__ import annotations

import pytest

from stepup_identity.audit import AuthEventType
from stepup_identity.exceptions import IdentityPermissionError, RoleAssignmentError
from stepup_identity.models import Role
from stepup_identity.primitives.exceptions import ValidationError
from stepup_identity.roles import InMemoryRoleStore, RoleService


@pytest.fixture
def role_store(clock) -> InMemoryRoleStore:
    return InMemoryRoleStore(clock=clock)


@pytest.fixture
def roles(role_store, audit_store) -> RoleService:
    return RoleService(role_store, audit_store=audit_store)


class TestInMemoryRoleStore:
    @pytest.mark.asyncio
    async def test_grant_is_idempotent(self, role_store: InMemoryRoleStore) -> None:
        await role_store.grant("u1", Role.ADMIN)
        await role_store.grant("u1", Role.ADMIN)
        await role_store.grant("u1", Role.USER)

        assert await role_store.list_roles("u1") == [Role.ADMIN, Role.USER]

    @pytest.mark.asyncio
    async def test_revoke(self, role_store: InMemoryRoleStore) -> None:
        await role_store.grant("u1", Role.ADMIN)
        await role_store.revoke("u1", Role.ADMIN)

        assert not await role_store.has_role("u1", Role.ADMIN)


class TestIsAdmin:
    @pytest.mark.asyncio
    async def test_checks_role_table(self, roles: RoleService, role_store) -> None:
        await role_store.grant("u1", Role.ADMIN)
        await role_store.grant("u2", Role.USER)

        assert await roles.is_admin("u1")
        assert not await roles.is_admin("u2")

    @pytest.mark.asyncio
    async def test_empty_user_id(self, roles: RoleService) -> None:
        assert not await roles.is_admin("")


class TestGrantAdmin:
    @pytest.mark.asyncio
    async def test_admin_grants_admin(
        self, roles: RoleService, role_store, audit_store
    ) -> None:
        await role_store.grant("owner", Role.ADMIN)

        await roles.grant_admin("owner", " u2 ")

        assert await roles.is_admin("u2")
        (event,) = await audit_store.get_events(
            "u2", event_types=[AuthEventType.ROLE_GRANTED]
        )
        assert event.metadata == {"role": "admin", "actor_id": "owner"}

    @pytest.mark.asyncio
    async def test_non_admin_cannot_grant(self, roles: RoleService) -> None:
        with pytest.raises(IdentityPermissionError):
            await roles.grant_admin("u1", "u2")
        assert not await roles.is_admin("u2")

    @pytest.mark.asyncio
    async def test_target_already_admin(self, roles: RoleService, role_store) -> None:
        await role_store.grant("owner", Role.ADMIN)
        await role_store.grant("u2", Role.ADMIN)

        with pytest.raises(RoleAssignmentError):
            await roles.grant_admin("owner", "u2")

    @pytest.mark.asyncio
    async def test_blank_target(self, roles: RoleService, role_store) -> None:
        await role_store.grant("owner", Role.ADMIN)

        with pytest.raises(ValidationError):
            await roles.grant_admin("owner", "   ")


class TestTransferOwnership:
    @pytest.mark.asyncio
    async def test_moves_admin_role(
        self, roles: RoleService, role_store, audit_store
    ) -> None:
        await role_store.grant("owner", Role.ADMIN)

        await roles.transfer_ownership("owner", "u2")

        assert await roles.is_admin("u2")
        assert not await roles.is_admin("owner")
        assert AuthEventType.ROLE_REVOKED in audit_store.event_types()

    @pytest.mark.asyncio
    async def test_cannot_transfer_to_self(
        self, roles: RoleService, role_store
    ) -> None:
        await role_store.grant("owner", Role.ADMIN)

        with pytest.raises(RoleAssignmentError):
            await roles.transfer_ownership("owner", "owner")
        assert await roles.is_admin("owner")

    @pytest.mark.asyncio
    async def test_target_already_admin_keeps_both(
        self, roles: RoleService, role_store
    ) -> None:
        await role_store.grant("owner", Role.ADMIN)
        await role_store.grant("u2", Role.ADMIN)

        with pytest.raises(RoleAssignmentError):
            await roles.transfer_ownership("owner", "u2")
        assert await roles.is_admin("owner")
        assert await roles.is_admin("u2")

    @pytest.mark.asyncio
    async def test_non_admin_cannot_transfer(self, roles: RoleService) -> None:
        with pytest.raises(IdentityPermissionError):
            await roles.transfer_ownership("u1", "u2")
