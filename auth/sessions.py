"""
auth/sessions.py -- Login, refresh rotation, access validation and logout.

SessionOrchestrator composes the credential verifier (auth.passwords), the
TOTP engine, the token issuer and the token ledger. It holds no per-request
state of its own; everything durable goes through the store.

Security rules enforced here:
  [C1] Timing equalization: login runs exactly one bcrypt comparison whether
       or not the email exists, so response time does not enumerate accounts.
  [C2] No oracle: unknown email, inactive account, wrong password and wrong
       TOTP code all return INVALID_CREDENTIALS. Absent, revoked, expired,
       wrong-class and forged tokens all return INVALID_OR_EXPIRED_TOKEN.
  [C3] Mandatory rotation: every successful refresh revokes the presented
       refresh token in the same transaction that records its successors. A
       second use of the same token fails -- it cannot be told apart from a
       stolen copy.
  [C4] The ledger is consulted on every refresh and every access validation.
       A valid signature alone never authenticates.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

import logging

from auth.errors import Failure
from auth.ledger import TokenLedger
from auth.models import (
    CredentialRecord,
    LoginResult,
    Principal,
    PublicPrincipal,
    SecondFactorRequired,
    TokenClass,
    TokenPair,
    to_public,
)
from auth.passwords import burn_verification, verify_password
from auth.store import AuthStore
from auth.tokens import TokenIssuer, hash_token
from auth.totp import TotpEngine
from core.clock import Clock, utcnow

logger = logging.getLogger("taskgate.auth")


class SessionOrchestrator:
    def __init__(
        self,
        store: AuthStore,
        ledger: TokenLedger,
        issuer: TokenIssuer,
        totp: TotpEngine,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.issuer = issuer
        self.totp = totp
        self._clock = clock

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def login(
        self, email: str, password: str, totp_code: str | None = None
    ) -> LoginResult | SecondFactorRequired | Failure:
        """Authenticate with email + password (+ TOTP code when enrolled).

        Returns SecondFactorRequired, with no credentials issued, when the
        principal has 2FA enabled and no code was supplied.
        """
        principal = self.store.get_by_email(email)
        if principal is None or not principal.is_active or not principal.password_hash:
            burn_verification(password)  # [C1]
            logger.info("Login rejected")
            return Failure.INVALID_CREDENTIALS
        if not verify_password(password, principal.password_hash):
            logger.info("Login rejected")
            return Failure.INVALID_CREDENTIALS

        if principal.totp_enabled:
            if not totp_code:
                return SecondFactorRequired(principal=to_public(principal))
            if not self.totp.verify(principal.id, totp_code):
                logger.info("Login rejected")  # [C2] same outcome as a wrong password
                return Failure.INVALID_CREDENTIALS

        self.store.update_last_login(principal.id)
        principal = self.store.get_by_id(principal.id) or principal
        tokens = self._issue_pair(principal)
        logger.info("Login succeeded for principal %d", principal.id)
        return LoginResult(principal=to_public(principal), tokens=tokens)

    def _mint_pair(self, principal: Principal) -> tuple[TokenPair, list[CredentialRecord]]:
        access = self.issuer.mint(principal, TokenClass.access)
        refresh = self.issuer.mint(principal, TokenClass.refresh)
        pair = TokenPair(
            access_token=access.token,
            refresh_token=refresh.token,
            access_expires_at=access.record.expires_at,
            refresh_expires_at=refresh.record.expires_at,
        )
        return pair, [access.record, refresh.record]

    def _issue_pair(self, principal: Principal) -> TokenPair:
        pair, records = self._mint_pair(principal)
        self.ledger.record(records)
        return pair

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> TokenPair | Failure:
        """Exchange a refresh token for a new access+refresh pair [C3]."""
        token_hash = hash_token(refresh_token)
        record = self.ledger.find(token_hash)
        now = self._clock()
        if record is None or record.token_class is not TokenClass.refresh:
            return Failure.INVALID_OR_EXPIRED_TOKEN
        if record.revoked:
            logger.warning("Revoked refresh token presented for principal %d", record.principal_id)
            return Failure.INVALID_OR_EXPIRED_TOKEN
        if not record.is_usable(now):
            return Failure.INVALID_OR_EXPIRED_TOKEN

        claims = self.issuer.decode(refresh_token, TokenClass.refresh)
        if claims is None or claims["principal_id"] != record.principal_id:
            return Failure.INVALID_OR_EXPIRED_TOKEN

        principal = self.store.get_by_id(record.principal_id)
        if principal is None or not principal.is_active:
            return Failure.INVALID_OR_EXPIRED_TOKEN

        pair, successors = self._mint_pair(principal)
        if not self.ledger.rotate(token_hash, successors):
            # Lost the race against a concurrent use of the same token.
            return Failure.INVALID_OR_EXPIRED_TOKEN
        return pair

    # ------------------------------------------------------------------
    # Access validation
    # ------------------------------------------------------------------

    def authenticate(self, access_token: str) -> PublicPrincipal | Failure:
        """Resolve a presented access token to its principal [C4]."""
        claims = self.issuer.decode(access_token, TokenClass.access)
        if claims is None:
            return Failure.INVALID_OR_EXPIRED_TOKEN
        record = self.ledger.find(hash_token(access_token))
        if (
            record is None
            or record.token_class is not TokenClass.access
            or record.principal_id != claims["principal_id"]
            or not record.is_usable(self._clock())
        ):
            return Failure.INVALID_OR_EXPIRED_TOKEN
        principal = self.store.get_by_id(record.principal_id)
        if principal is None or not principal.is_active:
            return Failure.INVALID_OR_EXPIRED_TOKEN
        return to_public(principal)

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    def logout(self, token: str, principal_id: int | None = None) -> bool:
        """Revoke exactly the presented credential. Idempotent.

        When principal_id is given, a credential belonging to anyone else is
        left alone and False is returned.
        """
        return self.ledger.revoke(hash_token(token), principal_id)

    def logout_all(self, principal_id: int) -> int:
        """Revoke every live credential of principal_id; returns how many."""
        revoked = self.ledger.revoke_all(principal_id)
        logger.info("Revoked %d credentials for principal %d", revoked, principal_id)
        return revoked
