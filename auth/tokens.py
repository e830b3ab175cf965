"""
auth/tokens.py -- Signed access/refresh credential minting and verification.

Security design decisions:
  JWT: python-jose with HS256. Each credential class has its own signing key
       (TokenConfig.access_secret / refresh_secret) so a refresh token can never
       be replayed as an access token or vice versa, even before the "typ"
       claim is checked. Verification returns None on any failure -- the
       orchestrator collapses that into INVALID_OR_EXPIRED_TOKEN.

  Claims: sub (principal id), email, role, typ, jti, iat, exp, iss. The jti
       makes every token string unique, which the ledger relies on (its
       token_hash column is UNIQUE).

  Expiry: jose's own exp check uses the wall clock. The issuer checks exp
       against the injected Clock instead so issuance and verification agree on
       what "now" is. Signature and issuer are still verified by jose.

  Configuration: TokenIssuer receives an explicit TokenConfig at construction.
       Nothing here reads settings or the environment.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from jose import JWTError, jwt

from auth.models import CredentialRecord, IssuedToken, Principal, TokenClass
from core.clock import Clock, utcnow
from core.config import Settings

logger = logging.getLogger("taskgate.tokens")


@dataclass(frozen=True)
class TokenConfig:
    """Signing configuration for both credential classes."""

    issuer: str
    access_secret: str = field(repr=False)
    refresh_secret: str = field(repr=False)
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    algorithm: str = "HS256"

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenConfig:
        return cls(
            issuer=settings.token_issuer,
            access_secret=settings.access_token_secret,
            refresh_secret=settings.refresh_token_secret,
            access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
            refresh_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
            algorithm=settings.token_algorithm,
        )


def hash_token(raw_token: str) -> str:
    """Return the SHA-256 hex digest used as the ledger lookup key.

    A plain digest is enough: signed tokens carry a random jti and are far
    beyond brute-force range, so bcrypt-style slowness buys nothing here.
    """
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class TokenIssuer:
    """Mints and verifies signed credentials. Holds no mutable state."""

    def __init__(self, config: TokenConfig, clock: Clock = utcnow) -> None:
        self._config = config
        self._clock = clock

    def _secret(self, token_class: TokenClass) -> str:
        if token_class is TokenClass.access:
            return self._config.access_secret
        return self._config.refresh_secret

    def _ttl(self, token_class: TokenClass) -> timedelta:
        if token_class is TokenClass.access:
            return self._config.access_ttl
        return self._config.refresh_ttl

    def mint(self, principal: Principal, token_class: TokenClass) -> IssuedToken:
        """Sign a new credential for principal and build its ledger record.

        The record is not persisted here; the caller writes it through the
        ledger, usually together with its sibling credential in one transaction.
        """
        issued_at = self._clock()
        expires_at = issued_at + self._ttl(token_class)
        payload: dict[str, Any] = {
            "iss": self._config.issuer,
            "sub": str(principal.id),
            "email": principal.email,
            "role": principal.role,
            "typ": token_class.value,
            "jti": uuid.uuid4().hex,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        token = jwt.encode(payload, self._secret(token_class), algorithm=self._config.algorithm)
        record = CredentialRecord(
            principal_id=principal.id,
            token_hash=hash_token(token),
            token_class=token_class,
            expires_at=expires_at,
            issued_at=issued_at,
        )
        return IssuedToken(token=token, record=record)

    def decode(self, token: str, token_class: TokenClass) -> dict | None:
        """Verify signature, issuer, class and expiry. Returns claims or None."""
        try:
            payload = jwt.decode(
                token,
                self._secret(token_class),
                algorithms=[self._config.algorithm],
                issuer=self._config.issuer,
                options={"verify_exp": False, "verify_aud": False},
            )
        except JWTError:
            return None
        if payload.get("typ") != token_class.value:
            return None
        exp = payload.get("exp")
        sub = payload.get("sub")
        if not isinstance(exp, int) or not sub:
            return None
        if self._clock().timestamp() >= exp:
            return None
        try:
            payload["principal_id"] = int(sub)
        except ValueError:
            return None
        return payload
