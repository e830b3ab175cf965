"""
projects/store.py -- SQLAlchemy Core persistence for projects and memberships.

Pattern: Repository + Data Mapper, same as auth/store.py.

Soft delete: delete_project() clears is_active. Inactive projects are
invisible to every read here, so nobody (owner included) resolves a role on a
deleted project.

UNIQUE(project_id, principal_id) on project_members means a principal holds
at most one membership row per project; add_member() raises IntegrityError on
a second one.

DB path: taskgate_projects.db (separate from the auth database).
"""

from __future__ import annotations

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, UniqueConstraint, or_, select
from sqlalchemy.engine import Engine

from core.clock import Clock, to_iso, utcnow
from core.db import create_store_engine, infrastructure_guard
from projects.models import Project, ProjectMember

_DEFAULT_DB_URL = "sqlite:///taskgate_projects.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(200), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("owner_id", Integer, nullable=False, index=True),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_members = Table(
    "project_members",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, nullable=False, index=True),
    Column("principal_id", Integer, nullable=False, index=True),
    Column("role", String(16), nullable=False, server_default="member"),
    Column("joined_at", String(32), nullable=False),
    UniqueConstraint("project_id", "principal_id", name="uq_project_member"),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ProjectStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL, clock: Clock = utcnow) -> None:
        self.engine: Engine = create_store_engine(db_url)
        self._clock = clock
        with infrastructure_guard():
            metadata.create_all(self.engine)

    def _now_iso(self) -> str:
        return to_iso(self._clock())

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, project: Project) -> int:
        now = self._now_iso()
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                _projects.insert().values(
                    name=project.name,
                    description=project.description,
                    owner_id=project.owner_id,
                    is_active=1,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_project(self, project_id: int) -> Project | None:
        """Return an active project, or None if absent or soft-deleted."""
        with infrastructure_guard(), self.engine.connect() as conn:
            row = conn.execute(
                _projects.select().where((_projects.c.id == project_id) & (_projects.c.is_active == 1))
            ).fetchone()
        return _row_to_project(row) if row is not None else None

    def get_owner_id(self, project_id: int) -> int | None:
        """Owner of an active project, or None."""
        with infrastructure_guard(), self.engine.connect() as conn:
            return conn.execute(
                select(_projects.c.owner_id).where((_projects.c.id == project_id) & (_projects.c.is_active == 1))
            ).scalar()

    def list_for_principal(self, principal_id: int) -> list[Project]:
        """Active projects principal_id owns or is a member of, newest first."""
        member_of = select(_members.c.project_id).where(_members.c.principal_id == principal_id)
        query = (
            _projects.select()
            .where(_projects.c.is_active == 1)
            .where(or_(_projects.c.owner_id == principal_id, _projects.c.id.in_(member_of)))
            .order_by(_projects.c.created_at.desc(), _projects.c.id.desc())
        )
        with infrastructure_guard(), self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_project(r) for r in rows]

    def update_project(self, project_id: int, *, name: str | None = None, description: str | None = None) -> bool:
        values: dict = {"updated_at": self._now_iso()}
        if name is not None:
            values["name"] = name
        if description is not None:
            values["description"] = description
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                _projects.update()
                .where((_projects.c.id == project_id) & (_projects.c.is_active == 1))
                .values(**values)
            )
        return result.rowcount > 0

    def delete_project(self, project_id: int) -> bool:
        """Soft delete. Returns False if already inactive or absent."""
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                _projects.update()
                .where((_projects.c.id == project_id) & (_projects.c.is_active == 1))
                .values(is_active=0, updated_at=self._now_iso())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    def add_member(self, project_id: int, principal_id: int, role: str) -> ProjectMember:
        """Insert a membership row. IntegrityError if the pair already exists."""
        now = self._now_iso()
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                _members.insert().values(project_id=project_id, principal_id=principal_id, role=role, joined_at=now)
            )
        return ProjectMember(
            id=result.inserted_primary_key[0],
            project_id=project_id,
            principal_id=principal_id,
            role=role,
            joined_at=now,
        )

    def get_member_role(self, project_id: int, principal_id: int) -> str | None:
        with infrastructure_guard(), self.engine.connect() as conn:
            return conn.execute(
                select(_members.c.role).where(
                    (_members.c.project_id == project_id) & (_members.c.principal_id == principal_id)
                )
            ).scalar()

    def list_members(self, project_id: int) -> list[ProjectMember]:
        with infrastructure_guard(), self.engine.connect() as conn:
            rows = conn.execute(
                _members.select().where(_members.c.project_id == project_id).order_by(_members.c.joined_at, _members.c.id)
            ).fetchall()
        return [_row_to_member(r) for r in rows]

    def update_member_role(self, project_id: int, principal_id: int, role: str) -> bool:
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                _members.update()
                .where((_members.c.project_id == project_id) & (_members.c.principal_id == principal_id))
                .values(role=role)
            )
        return result.rowcount > 0

    def remove_member(self, project_id: int, principal_id: int) -> bool:
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                _members.delete().where(
                    (_members.c.project_id == project_id) & (_members.c.principal_id == principal_id)
                )
            )
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_project(row) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        description=row.description or "",
        owner_id=row.owner_id,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_member(row) -> ProjectMember:
    return ProjectMember(
        id=row.id,
        project_id=row.project_id,
        principal_id=row.principal_id,
        role=row.role,
        joined_at=row.joined_at,
    )
