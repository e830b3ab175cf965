"""
auth/ledger.py -- Server-side record of issued credentials and their revocation.

Every credential the issuer mints is written here, and every use of a
credential is checked here. A signed token that verifies cryptographically is
still refused if its ledger record is absent, revoked or past expiry; the
ledger is what makes logout and logout-all enforceable for stateless JWTs.

State per record:
    Issued --(logout / rotation / logout-all)--> Revoked
    Issued --(expires_at passes)-------------> Expired  (derived, never stored)
Nothing leaves Revoked. Natural expiry never flips the revoked flag; checks
compare expires_at against the caller's clock.

Atomicity:
  record() writes a login's access+refresh pair in one transaction.
  rotate() revokes the consumed refresh record and inserts its successors in
  one transaction. The revoke is conditional (revoked = 0), so of two
  concurrent rotations of the same token exactly one sees rowcount == 1; the
  other rolls back without inserting anything.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine

from auth.models import CredentialRecord, TokenClass
from auth.schema import auth_tokens
from core.clock import from_iso, to_iso
from core.db import infrastructure_guard

logger = logging.getLogger("taskgate.ledger")


class _RotationLost(Exception):
    """Internal signal: the consumed record was revoked under us. Rolls back."""


class TokenLedger:
    """Issued-credential records on the auth database engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def record(self, records: Sequence[CredentialRecord]) -> None:
        """Persist freshly minted credentials, all or none."""
        with infrastructure_guard(), self.engine.begin() as conn:
            _insert_all(conn, records)

    def find(self, token_hash: str) -> CredentialRecord | None:
        with infrastructure_guard(), self.engine.connect() as conn:
            row = conn.execute(auth_tokens.select().where(auth_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_record(row) if row is not None else None

    def rotate(self, consumed_hash: str, successors: Sequence[CredentialRecord]) -> bool:
        """Revoke consumed_hash and insert successors in a single transaction.

        Returns False (and writes nothing) if the consumed record was already
        revoked, which is what a replayed or concurrently used refresh token
        looks like.
        """
        try:
            with infrastructure_guard(), self.engine.begin() as conn:
                result = conn.execute(
                    auth_tokens.update()
                    .where((auth_tokens.c.token_hash == consumed_hash) & (auth_tokens.c.revoked == 0))
                    .values(revoked=1)
                )
                if result.rowcount != 1:
                    raise _RotationLost()
                _insert_all(conn, successors)
        except _RotationLost:
            logger.warning("Refresh rotation lost: credential already revoked")
            return False
        return True

    def revoke(self, token_hash: str, principal_id: int | None = None) -> bool:
        """Revoke one credential. Returns False if it was absent or already revoked.

        With principal_id, only a record owned by that principal is touched.
        """
        condition = (auth_tokens.c.token_hash == token_hash) & (auth_tokens.c.revoked == 0)
        if principal_id is not None:
            condition = condition & (auth_tokens.c.principal_id == principal_id)
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(auth_tokens.update().where(condition).values(revoked=1))
        return result.rowcount > 0

    def revoke_all(self, principal_id: int) -> int:
        """Revoke every non-revoked credential of principal_id. Returns the count."""
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(
                auth_tokens.update()
                .where((auth_tokens.c.principal_id == principal_id) & (auth_tokens.c.revoked == 0))
                .values(revoked=1)
            )
        return result.rowcount

    def count_usable(self, principal_id: int, now: datetime, token_class: TokenClass | None = None) -> int:
        """Count credentials of principal_id that are neither revoked nor expired at now."""
        query = (
            select(func.count())
            .select_from(auth_tokens)
            .where(auth_tokens.c.principal_id == principal_id)
            .where(auth_tokens.c.revoked == 0)
            .where(auth_tokens.c.expires_at > to_iso(now))
        )
        if token_class is not None:
            query = query.where(auth_tokens.c.token_class == token_class.value)
        with infrastructure_guard(), self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def count_issued(self, principal_id: int) -> int:
        """Count every record ever written for principal_id (revoked and expired included)."""
        query = select(func.count()).select_from(auth_tokens).where(auth_tokens.c.principal_id == principal_id)
        with infrastructure_guard(), self.engine.connect() as conn:
            return conn.execute(query).scalar() or 0

    def purge_expired(self, now: datetime) -> int:
        """Delete records whose expiry has passed. Out-of-band housekeeping only.

        Revoked-but-unexpired records are kept: deleting them early would turn
        "revoked" into "absent", which is refused just the same, but keeping
        them preserves the audit trail until natural expiry.
        """
        with infrastructure_guard(), self.engine.begin() as conn:
            result = conn.execute(auth_tokens.delete().where(auth_tokens.c.expires_at <= to_iso(now)))
        if result.rowcount:
            logger.info("Purged %d expired credential records", result.rowcount)
        return result.rowcount


def _insert_all(conn: Connection, records: Sequence[CredentialRecord]) -> None:
    for record in records:
        result = conn.execute(
            auth_tokens.insert().values(
                principal_id=record.principal_id,
                token_hash=record.token_hash,
                token_class=record.token_class.value,
                expires_at=to_iso(record.expires_at),
                issued_at=to_iso(record.issued_at),
                revoked=1 if record.revoked else 0,
            )
        )
        record.id = result.inserted_primary_key[0]


def _row_to_record(row) -> CredentialRecord:
    return CredentialRecord(
        id=row.id,
        principal_id=row.principal_id,
        token_hash=row.token_hash,
        token_class=TokenClass(row.token_class),
        expires_at=from_iso(row.expires_at),
        issued_at=from_iso(row.issued_at),
        revoked=bool(row.revoked),
    )
