"""
auth/totp.py -- Time-based one-time password enrollment and verification.

RFC 6238 via pyotp: 30-second steps, 6 digits, HMAC-SHA1 (what every
authenticator app speaks). Secrets are pyotp.random_base32(32): 32 base32
characters = 160 bits, readable for manual entry.

Enrollment is two-phase. setup() stores a *pending* secret; it only protects
logins once enable() has seen a live code for it. Both enable() and disable()
demand a verifying code, so a typo'd secret cannot lock the owner out and a
leaked setup response cannot be used to switch 2FA off.

Window: a code is accepted if it matches any step within +/- valid_window of
the current one (default 2, roughly +/- 60-90 s of clock skew).

Single-use mode (totp_single_use): the matched step must be newer than the
last step this principal consumed; the store records it with a conditional
UPDATE. A code observed over someone's shoulder is then worthless after its
first use, at the cost of rejecting an immediate second login with the same
code.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

import hmac
import logging
import re

import pyotp

from auth.errors import Failure
from auth.models import TotpSetup
from auth.store import AuthStore
from core.clock import Clock, utcnow

logger = logging.getLogger("taskgate.totp")

_CODE_RE = re.compile(r"^\d{6}$")


class TotpEngine:
    def __init__(
        self,
        store: AuthStore,
        *,
        issuer: str = "TaskGate",
        valid_window: int = 2,
        single_use: bool = False,
        clock: Clock = utcnow,
    ) -> None:
        self.store = store
        self.issuer = issuer
        self.valid_window = valid_window
        self.single_use = single_use
        self._clock = clock

    def setup(self, principal_id: int) -> TotpSetup | Failure:
        """Generate and store a pending secret; return it with its otpauth:// URI."""
        principal = self.store.get_by_id(principal_id)
        if principal is None:
            return Failure.PRINCIPAL_NOT_FOUND
        if principal.totp_enabled:
            # Replacing a live secret would silently desync the user's app.
            return Failure.SECOND_FACTOR_ACTIVE
        secret = pyotp.random_base32(32)
        self.store.set_totp_secret(principal_id, secret)
        uri = pyotp.TOTP(secret).provisioning_uri(name=principal.email, issuer_name=self.issuer)
        logger.info("TOTP setup started for principal %d", principal_id)
        return TotpSetup(secret=secret, provisioning_uri=uri)

    def verify(self, principal_id: int, code: str) -> bool:
        """Return True if code matches the principal's secret within the window."""
        if not code or not _CODE_RE.match(code):
            return False
        principal = self.store.get_by_id(principal_id)
        if principal is None or not principal.totp_secret:
            return False
        step = self._matching_step(principal.totp_secret, code)
        if step is None:
            return False
        if self.single_use and not self.store.consume_totp_step(principal_id, step):
            logger.warning("TOTP code replay rejected for principal %d", principal_id)
            return False
        return True

    def enable(self, principal_id: int, code: str) -> None | Failure:
        if not self.verify(principal_id, code):
            return Failure.INVALID_SECOND_FACTOR
        self.store.set_totp_enabled(principal_id)
        logger.info("TOTP enabled for principal %d", principal_id)
        return None

    def disable(self, principal_id: int, code: str) -> None | Failure:
        if not self.verify(principal_id, code):
            return Failure.INVALID_SECOND_FACTOR
        self.store.clear_totp(principal_id)
        logger.info("TOTP disabled for principal %d", principal_id)
        return None

    def status(self, principal_id: int) -> bool | Failure:
        principal = self.store.get_by_id(principal_id)
        if principal is None:
            return Failure.PRINCIPAL_NOT_FOUND
        return principal.totp_enabled

    def _matching_step(self, secret: str, code: str) -> int | None:
        totp = pyotp.TOTP(secret)
        current = totp.timecode(self._clock())
        # Current step first: the common case stops after one HMAC.
        offsets = sorted(range(-self.valid_window, self.valid_window + 1), key=abs)
        for offset in offsets:
            step = current + offset
            if step < 0:
                continue
            if hmac.compare_digest(totp.generate_otp(step), code):
                return step
        return None
