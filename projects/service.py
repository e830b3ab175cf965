"""
projects/service.py -- Project CRUD and membership management behind access checks.

Every public method takes the acting principal's id first and asks the
AccessResolver before touching the store:

    get_project, list_members          read
    update_project                     write
    delete_project, *_member           admin (owner only)

Order of checks: project existence, then access. A missing or soft-deleted
project is PROJECT_NOT_FOUND for everyone; an existing project the caller
cannot reach at the required tier is ACCESS_DENIED.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.access import AccessResolver
from auth.errors import Failure
from auth.models import AccessTier
from auth.store import AuthStore
from projects.models import ASSIGNABLE_MEMBERSHIP_ROLES, Project, ProjectMember
from projects.store import ProjectStore

logger = logging.getLogger("taskgate.projects")


class ProjectService:
    def __init__(self, projects: ProjectStore, access: AccessResolver, principals: AuthStore) -> None:
        self.projects = projects
        self.access = access
        self.principals = principals

    def _guard(self, actor_id: int, project_id: int, tier: AccessTier) -> Project | Failure:
        project = self.projects.get_project(project_id)
        if project is None:
            return Failure.PROJECT_NOT_FOUND
        if not self.access.can_access(project_id, actor_id, tier):
            logger.info("Principal %d denied %s access to project %d", actor_id, tier.value, project_id)
            return Failure.ACCESS_DENIED
        return project

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, actor_id: int, name: str, description: str = "") -> Project:
        """The creator becomes owner. No membership row is written for them."""
        project_id = self.projects.create_project(Project(name=name, description=description, owner_id=actor_id))
        logger.info("Project %d created by principal %d", project_id, actor_id)
        return self.projects.get_project(project_id)

    def list_projects(self, actor_id: int) -> list[Project]:
        return self.projects.list_for_principal(actor_id)

    def get_project(self, actor_id: int, project_id: int) -> Project | Failure:
        return self._guard(actor_id, project_id, AccessTier.read)

    def update_project(
        self, actor_id: int, project_id: int, *, name: str | None = None, description: str | None = None
    ) -> Project | Failure:
        guarded = self._guard(actor_id, project_id, AccessTier.write)
        if isinstance(guarded, Failure):
            return guarded
        self.projects.update_project(project_id, name=name, description=description)
        return self.projects.get_project(project_id)

    def delete_project(self, actor_id: int, project_id: int) -> None | Failure:
        guarded = self._guard(actor_id, project_id, AccessTier.admin)
        if isinstance(guarded, Failure):
            return guarded
        self.projects.delete_project(project_id)
        logger.info("Project %d deleted by principal %d", project_id, actor_id)
        return None

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def list_members(self, actor_id: int, project_id: int) -> list[ProjectMember] | Failure:
        guarded = self._guard(actor_id, project_id, AccessTier.read)
        if isinstance(guarded, Failure):
            return guarded
        return self.projects.list_members(project_id)

    def add_member(self, actor_id: int, project_id: int, principal_id: int, role: str = "member") -> ProjectMember | Failure:
        if role not in ASSIGNABLE_MEMBERSHIP_ROLES:
            raise ValueError(f"Unassignable membership role: {role!r}")
        guarded = self._guard(actor_id, project_id, AccessTier.admin)
        if isinstance(guarded, Failure):
            return guarded
        if self.principals.get_by_id(principal_id) is None:
            return Failure.PRINCIPAL_NOT_FOUND
        if principal_id == guarded.owner_id:
            return Failure.ALREADY_MEMBER
        try:
            member = self.projects.add_member(project_id, principal_id, role)
        except IntegrityError:
            return Failure.ALREADY_MEMBER
        logger.info("Principal %d added to project %d as %s", principal_id, project_id, role)
        return member

    def change_member_role(self, actor_id: int, project_id: int, principal_id: int, role: str) -> None | Failure:
        if role not in ASSIGNABLE_MEMBERSHIP_ROLES:
            raise ValueError(f"Unassignable membership role: {role!r}")
        guarded = self._guard(actor_id, project_id, AccessTier.admin)
        if isinstance(guarded, Failure):
            return guarded
        if not self.projects.update_member_role(project_id, principal_id, role):
            return Failure.MEMBER_NOT_FOUND
        return None

    def remove_member(self, actor_id: int, project_id: int, principal_id: int) -> None | Failure:
        guarded = self._guard(actor_id, project_id, AccessTier.admin)
        if isinstance(guarded, Failure):
            return guarded
        if not self.projects.remove_member(project_id, principal_id):
            return Failure.MEMBER_NOT_FOUND
        logger.info("Principal %d removed from project %d", principal_id, project_id)
        return None
