"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and
services do the work; these types own the domain shape.

Redaction rule: a Principal carries the password digest and TOTP secret and
must never leave the auth package. Everything handed to callers is a
PublicPrincipal produced by to_public(). PublicPrincipal is a separate type
with no secret fields, so a field added to Principal later is not leaked
unless it is also added here on purpose.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TokenClass(str, Enum):
    access = "access"
    refresh = "refresh"


class AccessTier(str, Enum):
    read = "read"
    write = "write"
    admin = "admin"


@dataclass
class Principal:
    """An account as stored. Internal to auth/ -- see to_public()."""

    username: str
    email: str
    role: str  # global role label, e.g. "Administrator" / "Team Member"
    id: int | None = None
    password_hash: str | None = None
    first_name: str = ""
    last_name: str = ""
    is_active: bool = True
    totp_secret: str | None = None  # pending until totp_enabled is set
    totp_enabled: bool = False
    totp_last_step: int | None = None  # last consumed time step (single-use mode)
    last_login: str | None = None
    created_at: str = ""


@dataclass(frozen=True)
class PublicPrincipal:
    """The caller-visible projection of a Principal."""

    id: int
    username: str
    email: str
    role: str
    first_name: str
    last_name: str
    is_active: bool
    totp_enabled: bool
    last_login: str | None
    created_at: str


def to_public(principal: Principal) -> PublicPrincipal:
    """The single mapping from the stored record to its redacted projection."""
    return PublicPrincipal(
        id=principal.id,
        username=principal.username,
        email=principal.email,
        role=principal.role,
        first_name=principal.first_name,
        last_name=principal.last_name,
        is_active=principal.is_active,
        totp_enabled=principal.totp_enabled,
        last_login=principal.last_login,
        created_at=principal.created_at,
    )


@dataclass
class CredentialRecord:
    """One issued credential as tracked by the ledger.

    token_hash is SHA-256 of the raw token. The raw token is handed to the
    caller once and is not persisted, the same way API keys are handled.
    Expired is derived from expires_at; only revocation is stored.
    """

    principal_id: int
    token_hash: str
    token_class: TokenClass
    expires_at: datetime
    issued_at: datetime
    revoked: bool = False
    id: int | None = None

    def is_usable(self, now: datetime) -> bool:
        return not self.revoked and now < self.expires_at


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted credential: the raw token plus its ledger record."""

    token: str
    record: CredentialRecord


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    token_type: str = "bearer"


@dataclass(frozen=True)
class LoginResult:
    principal: PublicPrincipal
    tokens: TokenPair


@dataclass(frozen=True)
class SecondFactorRequired:
    """Valid intermediate login state: password accepted, TOTP code needed.

    Not a failure. No credentials exist for this state.
    """

    principal: PublicPrincipal


@dataclass(frozen=True)
class TotpSetup:
    secret: str
    provisioning_uri: str


@dataclass
class Role:
    """A named bundle of permission strings. is_system roles are immutable."""

    name: str
    permissions: list[str] = field(default_factory=list)
    description: str | None = None
    is_system: bool = False
    id: int | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class RoleAssignment:
    principal_id: int
    role_id: int
    id: int | None = None
    assigned_at: str = ""
