"""
auth/access.py -- Project access tiers, global permissions and role administration.

Two independent questions are answered here:

  1. Project scope -- "may principal P act on project X at tier T?"
     A principal's membership role on a project is resolved by a fixed
     precedence rule: ownership first, then the membership row. The owner
     therefore always resolves to "owner", even if a stray membership row
     exists for them. Tiers are monotone:

         read  <- {owner, member, viewer}
         write <- {owner, member}
         admin <- {owner}

  2. Global scope -- "does P hold permission string S?"
     The union of the permission sets of every role assigned to P.

Nothing is cached between calls: a role removed or a membership deleted is
visible to the very next check.

System roles (auth.permissions.SYSTEM_ROLES) are seeded by
ensure_system_roles() and refuse update and delete with IMMUTABLE_ROLE. The
check lives here, not in the HTTP layer, so every caller gets it.

Layer rule: no imports from api/ or projects/. Project data arrives through
the MembershipSource protocol, which projects.store.ProjectStore satisfies.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from sqlalchemy.exc import IntegrityError

from auth.errors import Failure
from auth.models import AccessTier, Role, RoleAssignment
from auth.permissions import ALL_PERMISSIONS, SYSTEM_ROLES
from auth.store import AuthStore

logger = logging.getLogger("taskgate.access")

OWNER = "owner"

_TIER_ROLES: dict[AccessTier, frozenset[str]] = {
    AccessTier.read: frozenset({OWNER, "member", "viewer"}),
    AccessTier.write: frozenset({OWNER, "member"}),
    AccessTier.admin: frozenset({OWNER}),
}


class MembershipSource(Protocol):
    """Read-only view of project ownership and membership."""

    def get_owner_id(self, project_id: int) -> int | None: ...

    def get_member_role(self, project_id: int, principal_id: int) -> str | None: ...


class AccessResolver:
    def __init__(self, store: AuthStore, projects: MembershipSource) -> None:
        self.store = store
        self.projects = projects

    # ------------------------------------------------------------------
    # Project scope
    # ------------------------------------------------------------------

    def role_for(self, project_id: int, principal_id: int) -> str | None:
        """Return "owner", the stored membership role, or None."""
        owner_id = self.projects.get_owner_id(project_id)
        if owner_id is None:
            return None  # absent or soft-deleted
        if owner_id == principal_id:
            return OWNER
        return self.projects.get_member_role(project_id, principal_id)

    def can_access(self, project_id: int, principal_id: int, required: AccessTier) -> bool:
        role = self.role_for(project_id, principal_id)
        return role is not None and role in _TIER_ROLES[required]

    # ------------------------------------------------------------------
    # Global scope
    # ------------------------------------------------------------------

    def global_permissions(self, principal_id: int) -> frozenset[str]:
        granted: set[str] = set()
        for role in self.store.roles_for_principal(principal_id):
            granted.update(role.permissions)
        return frozenset(granted)

    def has_permission(self, principal_id: int, permission: str) -> bool:
        return permission in self.global_permissions(principal_id)

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def assign_role(self, principal_id: int, role_id: int) -> RoleAssignment | Failure:
        if self.store.get_role(role_id) is None:
            return Failure.ROLE_NOT_FOUND
        if self.store.get_by_id(principal_id) is None:
            return Failure.PRINCIPAL_NOT_FOUND
        try:
            assignment = self.store.assign_role(principal_id, role_id)
        except IntegrityError:
            return Failure.ALREADY_ASSIGNED
        logger.info("Role %d assigned to principal %d", role_id, principal_id)
        return assignment

    def remove_role(self, principal_id: int, role_id: int) -> None | Failure:
        if self.store.get_role(role_id) is None:
            return Failure.ROLE_NOT_FOUND
        if not self.store.remove_role(principal_id, role_id):
            return Failure.ASSIGNMENT_NOT_FOUND
        logger.info("Role %d removed from principal %d", role_id, principal_id)
        return None

    # ------------------------------------------------------------------
    # Role administration
    # ------------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        return self.store.list_roles()

    def get_role(self, role_id: int) -> Role | Failure:
        role = self.store.get_role(role_id)
        return role if role is not None else Failure.ROLE_NOT_FOUND

    def create_role(self, name: str, permissions: Iterable[str], description: str | None = None) -> Role | Failure:
        perms = sorted(set(permissions))
        if not _known(perms):
            return Failure.UNKNOWN_PERMISSION
        try:
            role_id = self.store.create_role(Role(name=name, permissions=perms, description=description))
        except IntegrityError:
            return Failure.ROLE_NAME_TAKEN
        logger.info("Role %r created (id=%d)", name, role_id)
        return self.store.get_role(role_id)

    def update_role(
        self,
        role_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
        permissions: Iterable[str] | None = None,
    ) -> Role | Failure:
        role = self.store.get_role(role_id)
        if role is None:
            return Failure.ROLE_NOT_FOUND
        if role.is_system:
            return Failure.IMMUTABLE_ROLE
        perms = sorted(set(permissions)) if permissions is not None else None
        if perms is not None and not _known(perms):
            return Failure.UNKNOWN_PERMISSION
        try:
            self.store.update_role(role_id, name=name, description=description, permissions=perms)
        except IntegrityError:
            return Failure.ROLE_NAME_TAKEN
        logger.info("Role %d updated", role_id)
        return self.store.get_role(role_id)

    def delete_role(self, role_id: int) -> None | Failure:
        role = self.store.get_role(role_id)
        if role is None:
            return Failure.ROLE_NOT_FOUND
        if role.is_system:
            return Failure.IMMUTABLE_ROLE
        self.store.delete_role(role_id)
        logger.info("Role %d deleted", role_id)
        return None

    def ensure_system_roles(self) -> int:
        """Create any missing system role. Returns how many were created."""
        created = 0
        for name, (description, perms) in SYSTEM_ROLES.items():
            if self.store.get_role_by_name(name) is not None:
                continue
            try:
                self.store.create_role(
                    Role(name=name, permissions=sorted(perms), description=description, is_system=True)
                )
            except IntegrityError:
                continue  # seeded concurrently
            created += 1
        if created:
            logger.info("Seeded %d system roles", created)
        return created


def _known(permissions: Iterable[str]) -> bool:
    return all(p in ALL_PERMISSIONS for p in permissions)
