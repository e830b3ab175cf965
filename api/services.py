"""
api/services.py -- Build the service graph from Settings.

One place constructs stores and services so the API lifespan, the admin CLI
(main.py) and the tests all wire them identically:

    AuthStore ----+--> TokenLedger (same engine)
                  +--> TotpEngine
    TokenIssuer <-- TokenConfig.from_settings()
    SessionOrchestrator(store, ledger, issuer, totp)
    ProjectStore --> AccessResolver(store, projects) --> ProjectService
    AccountService(store, sessions)
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.access import AccessResolver
from auth.accounts import AccountService
from auth.ledger import TokenLedger
from auth.sessions import SessionOrchestrator
from auth.store import AuthStore
from auth.tokens import TokenConfig, TokenIssuer
from auth.totp import TotpEngine
from core.clock import Clock, utcnow
from core.config import Settings
from projects.service import ProjectService
from projects.store import ProjectStore


@dataclass
class Services:
    auth_store: AuthStore
    project_store: ProjectStore
    ledger: TokenLedger
    issuer: TokenIssuer
    totp: TotpEngine
    sessions: SessionOrchestrator
    access: AccessResolver
    accounts: AccountService
    projects: ProjectService

    def close(self) -> None:
        self.auth_store.close()
        self.project_store.close()


def build_services(
    settings: Settings,
    clock: Clock = utcnow,
    *,
    auth_db_url: str | None = None,
    projects_db_url: str | None = None,
) -> Services:
    """Open both stores and compose every service on top of them.

    The db_url overrides exist for tests, which use named in-memory databases.
    """
    auth_store = AuthStore(auth_db_url or settings.auth_db_url, clock=clock)
    project_store = ProjectStore(projects_db_url or settings.projects_db_url, clock=clock)
    ledger = TokenLedger(auth_store.engine)
    issuer = TokenIssuer(TokenConfig.from_settings(settings), clock=clock)
    totp = TotpEngine(
        auth_store,
        issuer=settings.totp_issuer,
        valid_window=settings.totp_valid_window,
        single_use=settings.totp_single_use,
        clock=clock,
    )
    sessions = SessionOrchestrator(auth_store, ledger, issuer, totp, clock=clock)
    access = AccessResolver(auth_store, project_store)
    return Services(
        auth_store=auth_store,
        project_store=project_store,
        ledger=ledger,
        issuer=issuer,
        totp=totp,
        sessions=sessions,
        access=access,
        accounts=AccountService(auth_store, sessions),
        projects=ProjectService(project_store, access, auth_store),
    )
