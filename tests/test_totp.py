"""
Unit tests for auth/totp.py -- TOTP enrollment and verification.

Covers:
- setup returns a base32 secret + otpauth:// URI and leaves 2FA disabled
- setup is refused while 2FA is already enabled
- enable / disable require a valid code; a wrong code changes nothing
- the +/- 2 step window, and rejection just outside it
- malformed codes never reach the HMAC comparison
- optional single-use mode rejects a replayed time step
"""

from datetime import datetime, timezone

import pyotp
import pytest

from auth.errors import Failure
from auth.models import TotpSetup
from auth.totp import TotpEngine

FIXED_SECRET = "JBSWY3DPEHPK3PXP"
FIXED_NOW = datetime(2026, 3, 14, 9, 26, 30, tzinfo=timezone.utc)


def _wrong_code(secret, clock) -> str:
    totp = pyotp.TOTP(secret)
    valid = {totp.at(clock(), offset) for offset in range(-2, 3)}
    return next(c for c in ("000000", "111111", "222222", "333333") if c not in valid)


class TestSetup:
    def test_setup_returns_pending_secret(self, services, register):
        ada = register("ada")
        setup = services.totp.setup(ada.id)
        assert isinstance(setup, TotpSetup)
        assert len(setup.secret) == 32
        assert setup.provisioning_uri.startswith("otpauth://totp/")
        assert "issuer=TaskGate" in setup.provisioning_uri
        assert services.totp.status(ada.id) is False

    def test_setup_unknown_principal(self, services):
        assert services.totp.setup(9999) is Failure.PRINCIPAL_NOT_FOUND

    def test_setup_refused_while_enabled(self, services, register, clock):
        ada = register("ada")
        setup = services.totp.setup(ada.id)
        services.totp.enable(ada.id, pyotp.TOTP(setup.secret).at(clock()))
        assert services.totp.setup(ada.id) is Failure.SECOND_FACTOR_ACTIVE

    def test_repeated_setup_replaces_pending_secret(self, services, register):
        ada = register("ada")
        first = services.totp.setup(ada.id)
        second = services.totp.setup(ada.id)
        assert first.secret != second.secret
        assert services.auth_store.get_by_id(ada.id).totp_secret == second.secret


class TestEnableDisable:
    def test_enable_with_valid_code(self, services, register, clock):
        ada = register("ada")
        setup = services.totp.setup(ada.id)
        assert services.totp.enable(ada.id, pyotp.TOTP(setup.secret).at(clock())) is None
        assert services.totp.status(ada.id) is True

    def test_enable_with_wrong_code_leaves_disabled(self, services, register, clock):
        ada = register("ada")
        setup = services.totp.setup(ada.id)
        assert services.totp.enable(ada.id, _wrong_code(setup.secret, clock)) is Failure.INVALID_SECOND_FACTOR
        assert services.totp.status(ada.id) is False

    def test_enable_without_setup(self, services, register):
        ada = register("ada")
        assert services.totp.enable(ada.id, "123456") is Failure.INVALID_SECOND_FACTOR

    def test_disable_with_wrong_code_leaves_enabled(self, services, register, clock):
        ada = register("ada")
        setup = services.totp.setup(ada.id)
        services.totp.enable(ada.id, pyotp.TOTP(setup.secret).at(clock()))
        assert services.totp.disable(ada.id, _wrong_code(setup.secret, clock)) is Failure.INVALID_SECOND_FACTOR
        assert services.totp.status(ada.id) is True

    def test_disable_clears_secret(self, services, register, clock):
        ada = register("ada")
        setup = services.totp.setup(ada.id)
        services.totp.enable(ada.id, pyotp.TOTP(setup.secret).at(clock()))
        clock.advance(seconds=30)
        assert services.totp.disable(ada.id, pyotp.TOTP(setup.secret).at(clock())) is None
        stored = services.auth_store.get_by_id(ada.id)
        assert stored.totp_enabled is False
        assert stored.totp_secret is None

    def test_status_unknown_principal(self, services):
        assert services.totp.status(4242) is Failure.PRINCIPAL_NOT_FOUND


class TestWindow:
    @pytest.mark.parametrize("offset", [-2, -1, 0, 1, 2])
    def test_codes_inside_window_accepted(self, services, register, clock, offset):
        ada = register("ada")
        setup = services.totp.setup(ada.id)
        code = pyotp.TOTP(setup.secret).at(clock(), offset)
        assert services.totp.verify(ada.id, code) is True

    @pytest.mark.parametrize("offset", [-4, -3, 3, 4])
    def test_codes_outside_window_rejected(self, services, register, clock, offset):
        ada = register("ada")
        services.auth_store.set_totp_secret(ada.id, FIXED_SECRET)
        clock.now = FIXED_NOW
        totp = pyotp.TOTP(FIXED_SECRET)
        code = totp.at(FIXED_NOW, offset)
        # fixed secret and instant: these codes never coincide with an in-window one
        assert code not in {totp.at(FIXED_NOW, o) for o in range(-2, 3)}
        assert services.totp.verify(ada.id, code) is False

    @pytest.mark.parametrize("code", ["", "12345", "1234567", "12a456", " 123456"])
    def test_malformed_codes_rejected(self, services, register, code):
        ada = register("ada")
        services.totp.setup(ada.id)
        assert services.totp.verify(ada.id, code) is False


class TestSingleUse:
    def test_replayed_step_rejected(self, services, register, clock):
        ada = register("ada")
        engine = TotpEngine(services.auth_store, single_use=True, clock=clock)
        setup = engine.setup(ada.id)
        code = pyotp.TOTP(setup.secret).at(clock())
        assert engine.verify(ada.id, code) is True
        assert engine.verify(ada.id, code) is False

    def test_older_step_rejected_after_newer_one(self, services, register, clock):
        ada = register("ada")
        engine = TotpEngine(services.auth_store, single_use=True, clock=clock)
        setup = engine.setup(ada.id)
        totp = pyotp.TOTP(setup.secret)
        assert engine.verify(ada.id, totp.at(clock(), 1)) is True
        assert engine.verify(ada.id, totp.at(clock(), -1)) is False

    def test_next_step_accepted(self, services, register, clock):
        ada = register("ada")
        engine = TotpEngine(services.auth_store, single_use=True, clock=clock)
        setup = engine.setup(ada.id)
        totp = pyotp.TOTP(setup.secret)
        assert engine.verify(ada.id, totp.at(clock())) is True
        clock.advance(seconds=30)
        assert engine.verify(ada.id, totp.at(clock())) is True

    def test_default_mode_allows_reuse_within_window(self, services, register, clock):
        ada = register("ada")
        setup = services.totp.setup(ada.id)
        code = pyotp.TOTP(setup.secret).at(clock())
        assert services.totp.verify(ada.id, code) is True
        assert services.totp.verify(ada.id, code) is True
