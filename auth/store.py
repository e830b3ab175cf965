"""
auth/store.py -- SQLAlchemy Core persistence layer for principals and roles.

Pattern: Repository + Data Mapper. AuthStore is the repository;
_row_to_principal / _row_to_role are the mappers. Services never touch SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.

  The store returns full Principal records (digest and TOTP secret included).
  Redaction happens in the services via auth.models.to_public(); nothing in
  this module builds caller-facing output.

Errors:
  Driver failures surface as InfrastructureFailure (core.db). Uniqueness
  violations surface as sqlalchemy.exc.IntegrityError so services can map
  them to EMAIL_TAKEN / ALREADY_ASSIGNED etc.

Issued credentials live in the same database (see auth/ledger.py) so login and
rotation can share transactions with principal updates.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

import json

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import Principal, Role, RoleAssignment
from auth.schema import metadata, principal_roles, principals, roles
from core.clock import Clock, to_iso, utcnow
from core.db import create_store_engine, infrastructure_guard

_DEFAULT_DB_URL = "sqlite:///taskgate_auth.db"

# Mutable principal columns accepted by update_principal(). Anything else is a
# programming error and raises ValueError (fail fast, never silently dropped).
_PRINCIPAL_FIELDS = frozenset(
    {"username", "email", "password_hash", "role", "first_name", "last_name", "is_active"}
)


class AuthStore:
    """Repository for Principal, Role and RoleAssignment entities.

    Usage:
        store = AuthStore("sqlite:///:memory:")
        pid = store.create_principal(Principal(username="ada", email="ada@example.com", role="Team Member"))
        principal = store.get_by_email("ada@example.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, clock: Clock = utcnow) -> None:
        self.engine: Engine = create_store_engine(db_url)
        self._clock = clock
        with infrastructure_guard():
            metadata.create_all(self.engine)

    def _now_iso(self) -> str:
        return to_iso(self._clock())

    # ------------------------------------------------------------------
    # Principals
    # ------------------------------------------------------------------

    def has_principals(self) -> bool:
        """Return True if at least one principal exists (first-run detection)."""
        with infrastructure_guard(), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(principals)).scalar()
        return (result or 0) > 0

    def create_principal(self, principal: Principal) -> int:
        """Insert a new principal and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. Callers pre-check for friendly errors but must still catch it:
        two concurrent registrations can both pass the pre-check.
        """
        now = self._now_iso()
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                principals.insert().values(
                    username=principal.username,
                    email=principal.email,
                    password_hash=principal.password_hash,
                    role=principal.role,
                    first_name=principal.first_name,
                    last_name=principal.last_name,
                    is_active=1 if principal.is_active else 0,
                    totp_secret=None,
                    totp_enabled=0,
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_by_id(self, principal_id: int) -> Principal | None:
        with infrastructure_guard(), self.engine.connect() as conn:
            row = conn.execute(principals.select().where(principals.c.id == principal_id)).fetchone()
        return _row_to_principal(row) if row is not None else None

    def get_by_email(self, email: str) -> Principal | None:
        """Look up a principal by email, case-insensitively."""
        with infrastructure_guard(), self.engine.connect() as conn:
            row = conn.execute(
                principals.select().where(func.lower(principals.c.email) == email.strip().lower())
            ).fetchone()
        return _row_to_principal(row) if row is not None else None

    def get_by_username(self, username: str) -> Principal | None:
        with infrastructure_guard(), self.engine.connect() as conn:
            row = conn.execute(principals.select().where(principals.c.username == username)).fetchone()
        return _row_to_principal(row) if row is not None else None

    def list_principals(self) -> list[Principal]:
        with infrastructure_guard(), self.engine.connect() as conn:
            rows = conn.execute(principals.select().order_by(principals.c.username)).fetchall()
        return [_row_to_principal(r) for r in rows]

    def update_principal(self, principal_id: int, **fields) -> bool:
        """Update mutable fields on an existing principal.

        Accepted fields: see _PRINCIPAL_FIELDS. is_active must be passed as
        bool; it is converted to int for storage.

        Returns True if a row was updated, False if principal_id was not found.
        """
        unknown = set(fields) - _PRINCIPAL_FIELDS
        if unknown:
            raise ValueError(f"Unknown principal fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = self._now_iso()
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(principals.update().where(principals.c.id == principal_id).values(**fields))
        return result.rowcount > 0

    def update_last_login(self, principal_id: int) -> None:
        """Stamp the current UTC time as last_login after a successful login."""
        now = self._now_iso()
        with infrastructure_guard(), self.engine.begin() as conn:
            conn.execute(principals.update().where(principals.c.id == principal_id).values(last_login=now))

    # ------------------------------------------------------------------
    # TOTP enrollment state
    # ------------------------------------------------------------------

    def set_totp_secret(self, principal_id: int, secret: str) -> bool:
        """Store a pending secret (enabled stays off until a code is verified)."""
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                principals.update()
                .where(principals.c.id == principal_id)
                .values(totp_secret=secret, totp_enabled=0, totp_last_step=None, updated_at=self._now_iso())
            )
        return result.rowcount > 0

    def set_totp_enabled(self, principal_id: int) -> None:
        with infrastructure_guard(), self.engine.begin() as conn:
            conn.execute(
                principals.update()
                .where(principals.c.id == principal_id)
                .values(totp_enabled=1, updated_at=self._now_iso())
            )

    def clear_totp(self, principal_id: int) -> None:
        with infrastructure_guard(), self.engine.begin() as conn:
            conn.execute(
                principals.update()
                .where(principals.c.id == principal_id)
                .values(totp_secret=None, totp_enabled=0, totp_last_step=None, updated_at=self._now_iso())
            )

    def consume_totp_step(self, principal_id: int, step: int) -> bool:
        """Record step as consumed if it is newer than the last consumed one.

        Single conditional UPDATE, so two concurrent requests presenting the
        same code cannot both succeed. Returns False if the step was already
        used (or an older one was presented).
        """
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                principals.update()
                .where(principals.c.id == principal_id)
                .where((principals.c.totp_last_step.is_(None)) | (principals.c.totp_last_step < step))
                .values(totp_last_step=step)
            )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def create_role(self, role: Role) -> int:
        """Insert a role and return its ID. IntegrityError on duplicate name."""
        now = self._now_iso()
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                roles.insert().values(
                    name=role.name,
                    description=role.description,
                    is_system=1 if role.is_system else 0,
                    permissions=json.dumps(sorted(set(role.permissions))),
                    created_at=now,
                    updated_at=now,
                )
            )
            return result.inserted_primary_key[0]

    def get_role(self, role_id: int) -> Role | None:
        with infrastructure_guard(), self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_name(self, name: str) -> Role | None:
        with infrastructure_guard(), self.engine.connect() as conn:
            row = conn.execute(roles.select().where(roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        with infrastructure_guard(), self.engine.connect() as conn:
            rows = conn.execute(roles.select().order_by(roles.c.id)).fetchall()
        return [_row_to_role(r) for r in rows]

    def update_role(
        self,
        role_id: int,
        *,
        name: str | None = None,
        description: str | None = None,
        permissions: list[str] | None = None,
    ) -> bool:
        """Update a role's mutable fields. The system flag is never writable.

        Returns False if role_id was not found. IntegrityError on a name clash.
        """
        values: dict = {"updated_at": self._now_iso()}
        if name is not None:
            values["name"] = name
        if description is not None:
            values["description"] = description
        if permissions is not None:
            values["permissions"] = json.dumps(sorted(set(permissions)))
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(roles.update().where(roles.c.id == role_id).values(**values))
        return result.rowcount > 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role and every assignment of it, in one transaction."""
        with infrastructure_guard(), self.engine.begin() as conn:
            conn.execute(principal_roles.delete().where(principal_roles.c.role_id == role_id))
            result = conn.execute(roles.delete().where(roles.c.id == role_id))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Role assignments
    # ------------------------------------------------------------------

    def assign_role(self, principal_id: int, role_id: int) -> RoleAssignment:
        """Insert a (principal, role) pairing. IntegrityError if it already exists."""
        now = self._now_iso()
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                principal_roles.insert().values(principal_id=principal_id, role_id=role_id, assigned_at=now)
            )
        return RoleAssignment(
            id=result.inserted_primary_key[0],
            principal_id=principal_id,
            role_id=role_id,
            assigned_at=now,
        )

    def remove_role(self, principal_id: int, role_id: int) -> bool:
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                principal_roles.delete().where(
                    (principal_roles.c.principal_id == principal_id) & (principal_roles.c.role_id == role_id)
                )
            )
        return result.rowcount > 0

    def roles_for_principal(self, principal_id: int) -> list[Role]:
        """Return every role assigned to principal_id, oldest role first."""
        query = (
            select(roles)
            .join(principal_roles, principal_roles.c.role_id == roles.c.id)
            .where(principal_roles.c.principal_id == principal_id)
            .order_by(roles.c.id)
        )
        with infrastructure_guard(), self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_role(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_principal(row) -> Principal:
    return Principal(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        is_active=bool(row.is_active),
        totp_secret=row.totp_secret,
        totp_enabled=bool(row.totp_enabled),
        totp_last_step=row.totp_last_step,
        last_login=row.last_login,
        created_at=row.created_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description,
        is_system=bool(row.is_system),
        permissions=json.loads(row.permissions),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
