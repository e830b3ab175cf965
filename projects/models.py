"""
projects/models.py -- Domain dataclasses for projects and memberships.

Pure data containers. Ownership is a column on Project, not a membership row:
the owner holds the "owner" membership role implicitly (see
auth.access.AccessResolver.role_for).
"""

from __future__ import annotations

from dataclasses import dataclass

MEMBER = "member"
VIEWER = "viewer"

# Roles that may be granted through a membership row. Ownership is never a
# row; it is derived from Project.owner_id.
ASSIGNABLE_MEMBERSHIP_ROLES = frozenset({MEMBER, VIEWER})


@dataclass
class Project:
    """A tracked project. id is None before the record is written."""

    name: str
    owner_id: int
    description: str = ""
    id: int | None = None
    is_active: bool = True
    created_at: str = ""
    updated_at: str = ""


@dataclass
class ProjectMember:
    project_id: int
    principal_id: int
    role: str  # "member" | "viewer"
    id: int | None = None
    joined_at: str = ""
