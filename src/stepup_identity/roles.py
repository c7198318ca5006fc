"""Role checks and admin management.

Administrative capability is a role held in the ``user_roles`` table; it
is independent of how the session was verified.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from .audit.events import role_changed_event
from .audit.recorder import record_audit_event
from .exceptions import IdentityPermissionError, RoleAssignmentError
from .models import Role, RoleAssignment
from .ports import IRoleStore
from .primitives.clock import utcnow
from .primitives.exceptions import ValidationError

if TYPE_CHECKING:
    from .ports import IAuthAuditStore
    from .primitives.clock import Clock

logger = logging.getLogger(__name__)


class RoleService:
    """Role lookups plus admin grant and ownership transfer.

    Example:
        ```python
        roles = RoleService(InMemoryRoleStore())

        if await roles.is_admin(session.user_id):
            await roles.grant_admin(session.user_id, new_admin_id)
        ```
    """

    def __init__(
        self,
        role_store: IRoleStore,
        *,
        audit_store: IAuthAuditStore | None = None,
    ) -> None:
        self.role_store = role_store
        self._audit_store = audit_store

    async def has_role(self, user_id: str, role: Role) -> bool:
        if not user_id:
            return False
        return await self.role_store.has_role(user_id, role)

    async def is_admin(self, user_id: str) -> bool:
        return await self.has_role(user_id, Role.ADMIN)

    async def _require_admin(self, actor_id: str) -> None:
        if not await self.is_admin(actor_id):
            raise IdentityPermissionError("Admin role required")

    @staticmethod
    def _validate_target(target_id: str) -> str:
        target_id = target_id.strip()
        if not target_id:
            raise ValidationError({"user_id": ["User ID is required"]})
        return target_id

    async def grant_admin(self, actor_id: str, target_id: str) -> None:
        """Add the admin role to another user.

        Raises:
            IdentityPermissionError: The actor is not an admin.
            RoleAssignmentError: The target already is an admin.
        """
        target_id = self._validate_target(target_id)
        await self._require_admin(actor_id)
        if await self.is_admin(target_id):
            raise RoleAssignmentError("User is already an admin")

        await self.role_store.grant(target_id, Role.ADMIN)
        logger.info("Admin role granted to %s by %s", target_id, actor_id)
        await record_audit_event(
            self._audit_store,
            role_changed_event(target_id, role=Role.ADMIN.value, actor_id=actor_id),
        )

    async def transfer_ownership(self, actor_id: str, target_id: str) -> None:
        """Hand the admin role to another user and drop it from the actor.

        The target is granted first, so a failure never leaves the site
        without an admin.

        Raises:
            IdentityPermissionError: The actor is not an admin.
            RoleAssignmentError: Self-transfer, or target already an admin.
        """
        target_id = self._validate_target(target_id)
        await self._require_admin(actor_id)
        if target_id == actor_id:
            raise RoleAssignmentError("Cannot transfer ownership to yourself")
        if await self.is_admin(target_id):
            raise RoleAssignmentError("User is already an admin")

        await self.role_store.grant(target_id, Role.ADMIN)
        await self.role_store.revoke(actor_id, Role.ADMIN)
        logger.info("Ownership transferred from %s to %s", actor_id, target_id)
        await record_audit_event(
            self._audit_store,
            role_changed_event(target_id, role=Role.ADMIN.value, actor_id=actor_id),
        )
        await record_audit_event(
            self._audit_store,
            role_changed_event(
                actor_id, role=Role.ADMIN.value, actor_id=actor_id, granted=False
            ),
        )


class InMemoryRoleStore(IRoleStore):
    """In-memory role store for TESTING ONLY."""

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or utcnow
        self._assignments: list[RoleAssignment] = []

    async def has_role(self, user_id: str, role: Role) -> bool:
        return any(a.user_id == user_id and a.role is role for a in self._assignments)

    async def list_roles(self, user_id: str) -> list[Role]:
        return [a.role for a in self._assignments if a.user_id == user_id]

    async def grant(self, user_id: str, role: Role) -> None:
        if await self.has_role(user_id, role):
            return
        self._assignments.append(
            RoleAssignment(
                id=str(uuid.uuid4()),
                user_id=user_id,
                role=role,
                created_at=self._clock(),
            )
        )

    async def revoke(self, user_id: str, role: Role) -> None:
        self._assignments = [
            a
            for a in self._assignments
            if not (a.user_id == user_id and a.role is role)
        ]


__all__: list[str] = ["RoleService", "InMemoryRoleStore"]
