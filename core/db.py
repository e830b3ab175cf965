"""
core/db.py -- Engine construction and driver-error translation for stores.

Every store (auth, ledger, projects) opens its engine through
create_store_engine() and wraps each unit of work in infrastructure_guard().

infrastructure_guard() converts driver-level failures (database locked,
unreachable, disk full, broken connection) into InfrastructureFailure so the
services above can tell "the store is down" apart from domain outcomes.
IntegrityError is NOT converted: uniqueness violations are domain signals
(duplicate email, duplicate role assignment) that stores and services
translate into Failure values themselves.

Layer rule: core/ is the kernel. No imports from api/, auth/ or projects/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError

logger = logging.getLogger("taskgate.db")


class InfrastructureFailure(Exception):
    """The store (or another collaborator) is unavailable or misbehaving.

    Raised with the original driver exception chained as __cause__. Never
    retried inside the core; the transport layer decides.
    """


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases ignore it.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite-specific settings the stores need.

    check_same_thread=False: FastAPI runs sync route handlers in a thread
    pool, so one pooled SQLite connection may be used from several threads.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def infrastructure_guard() -> Iterator[None]:
    """Re-raise driver errors (other than integrity violations) as InfrastructureFailure."""
    try:
        yield
    except IntegrityError:
        raise
    except DBAPIError as exc:
        logger.error("Store failure: %s", exc.__class__.__name__)
        raise InfrastructureFailure("store unavailable") from exc
