"""
auth/permissions.py -- Global permission catalog and the built-in system roles.

Permission strings are "<area>:<action>". Custom roles may only carry strings
from ALL_PERMISSIONS; anything else is rejected at role creation/update so a
typo never turns into a permission nobody checks.

SYSTEM_ROLES are seeded by AccessResolver.ensure_system_roles() and are
immutable afterwards.
"""

from __future__ import annotations

# Users
USERS_VIEW = "users:view"
USERS_CREATE = "users:create"
USERS_EDIT = "users:edit"
USERS_DELETE = "users:delete"
USERS_MANAGE_ROLES = "users:manage_roles"

# Projects
PROJECTS_VIEW_ALL = "projects:view_all"
PROJECTS_VIEW_OWN = "projects:view_own"
PROJECTS_CREATE = "projects:create"
PROJECTS_EDIT = "projects:edit"
PROJECTS_DELETE = "projects:delete"
PROJECTS_ARCHIVE = "projects:archive"

# Tasks
TASKS_VIEW_ALL = "tasks:view_all"
TASKS_VIEW_OWN = "tasks:view_own"
TASKS_CREATE = "tasks:create"
TASKS_EDIT = "tasks:edit"
TASKS_DELETE = "tasks:delete"
TASKS_ASSIGN = "tasks:assign"

# Teams
TEAMS_VIEW = "teams:view"
TEAMS_CREATE = "teams:create"
TEAMS_EDIT = "teams:edit"
TEAMS_DELETE = "teams:delete"
TEAMS_MANAGE_MEMBERS = "teams:manage_members"

# Boards
BOARDS_VIEW = "boards:view"
BOARDS_CREATE = "boards:create"
BOARDS_EDIT = "boards:edit"
BOARDS_DELETE = "boards:delete"

# Administration
ADMIN_ACCESS = "admin:access"
ADMIN_SETTINGS = "admin:settings"
ADMIN_ROLES = "admin:roles"
ADMIN_LOGS = "admin:logs"

# Reports
REPORTS_VIEW = "reports:view"
REPORTS_EXPORT = "reports:export"

ALL_PERMISSIONS: frozenset[str] = frozenset(
    {
        USERS_VIEW,
        USERS_CREATE,
        USERS_EDIT,
        USERS_DELETE,
        USERS_MANAGE_ROLES,
        PROJECTS_VIEW_ALL,
        PROJECTS_VIEW_OWN,
        PROJECTS_CREATE,
        PROJECTS_EDIT,
        PROJECTS_DELETE,
        PROJECTS_ARCHIVE,
        TASKS_VIEW_ALL,
        TASKS_VIEW_OWN,
        TASKS_CREATE,
        TASKS_EDIT,
        TASKS_DELETE,
        TASKS_ASSIGN,
        TEAMS_VIEW,
        TEAMS_CREATE,
        TEAMS_EDIT,
        TEAMS_DELETE,
        TEAMS_MANAGE_MEMBERS,
        BOARDS_VIEW,
        BOARDS_CREATE,
        BOARDS_EDIT,
        BOARDS_DELETE,
        ADMIN_ACCESS,
        ADMIN_SETTINGS,
        ADMIN_ROLES,
        ADMIN_LOGS,
        REPORTS_VIEW,
        REPORTS_EXPORT,
    }
)

ADMINISTRATOR = "Administrator"
PROJECT_MANAGER = "Project Manager"
TEAM_MEMBER = "Team Member"
VIEWER = "Viewer"

# name -> (description, permissions)
SYSTEM_ROLES: dict[str, tuple[str, frozenset[str]]] = {
    ADMINISTRATOR: ("Full access to all features", ALL_PERMISSIONS),
    PROJECT_MANAGER: (
        "Project and task management",
        frozenset(
            {
                PROJECTS_VIEW_OWN,
                PROJECTS_CREATE,
                PROJECTS_EDIT,
                TASKS_VIEW_ALL,
                TASKS_CREATE,
                TASKS_EDIT,
                TASKS_DELETE,
                TASKS_ASSIGN,
                TEAMS_VIEW,
                BOARDS_VIEW,
                BOARDS_CREATE,
                BOARDS_EDIT,
                REPORTS_VIEW,
            }
        ),
    ),
    TEAM_MEMBER: (
        "Standard user with access to assigned projects",
        frozenset({PROJECTS_VIEW_OWN, TASKS_VIEW_OWN, TASKS_CREATE, TASKS_EDIT, TEAMS_VIEW, BOARDS_VIEW}),
    ),
    VIEWER: (
        "Read-only access",
        frozenset({PROJECTS_VIEW_OWN, TASKS_VIEW_OWN, TEAMS_VIEW, BOARDS_VIEW}),
    ),
}
