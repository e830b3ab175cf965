"""
auth/schema.py -- SQLAlchemy Core table definitions for the auth database.

Shared by auth/store.py (principals, roles, assignments) and auth/ledger.py
(issued credentials). Both operate on the same engine, so a login can stamp
last_login and record its credentials in one transaction.

Timestamps are fixed-width UTC ISO 8601 strings (core.clock.to_iso), which
sort chronologically as text -- the expiry sweep relies on that.
"""

from __future__ import annotations

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, UniqueConstraint

metadata = MetaData()

principals = Table(
    "principals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(64), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text),
    Column("role", String(64), nullable=False, server_default="Team Member"),
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("totp_secret", String(64)),
    Column("totp_enabled", Integer, nullable=False, server_default="0"),
    Column("totp_last_step", Integer),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

auth_tokens = Table(
    "auth_tokens",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("principal_id", Integer, nullable=False, index=True),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex
    Column("token_class", String(16), nullable=False),  # "access" | "refresh"
    Column("expires_at", String(32), nullable=False),
    Column("issued_at", String(32), nullable=False),
    Column("revoked", Integer, nullable=False, server_default="0"),
    Index("ix_auth_tokens_expires_at", "expires_at"),
)

roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text),
    Column("is_system", Integer, nullable=False, server_default="0"),
    Column("permissions", Text, nullable=False),  # JSON array of permission strings
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

principal_roles = Table(
    "principal_roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("principal_id", Integer, nullable=False, index=True),
    Column("role_id", Integer, nullable=False),
    Column("assigned_at", String(32), nullable=False),
    UniqueConstraint("principal_id", "role_id", name="uq_principal_role"),
)
