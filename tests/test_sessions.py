"""
Unit tests for auth/sessions.py -- login, refresh rotation, access validation, logout.

Covers:
- login failure modes collapse into INVALID_CREDENTIALS
- timing equalization: unknown accounts still pay one bcrypt comparison
- 2FA gating: no credentials issued until the second factor is supplied
- refresh is single-use; replay, wrong class and expiry are refused
- authenticate() consults the ledger, not just the signature
- logout revokes exactly one credential; logout_all revokes all of them
"""

import pyotp
import pytest

import auth.sessions as sessions_module
from auth.errors import Failure
from auth.models import LoginResult, PublicPrincipal, SecondFactorRequired, TokenClass, TokenPair

PASSWORD = "correct-horse-1"


def _login(services, email="ada@example.com", password=PASSWORD, code=None) -> LoginResult:
    result = services.sessions.login(email, password, code)
    assert isinstance(result, LoginResult), result
    return result


def _enroll(services, principal_id, clock) -> str:
    setup = services.totp.setup(principal_id)
    code = pyotp.TOTP(setup.secret).at(clock())
    assert services.totp.enable(principal_id, code) is None
    return setup.secret


def _wrong_code(secret, clock) -> str:
    """A well-formed code that matches no step inside the verification window."""
    totp = pyotp.TOTP(secret)
    valid = {totp.at(clock(), offset) for offset in range(-2, 3)}
    return next(c for c in ("000000", "111111", "222222", "333333") if c not in valid)


class TestLogin:
    def test_success_issues_pair_and_redacts(self, services, register, clock):
        ada = register("ada")
        result = _login(services)
        assert isinstance(result.principal, PublicPrincipal)
        assert not hasattr(result.principal, "password_hash")
        assert not hasattr(result.principal, "totp_secret")
        assert result.principal.id == ada.id
        assert isinstance(result.tokens, TokenPair)
        assert services.ledger.count_usable(ada.id, clock()) == 2

    def test_last_login_is_stamped(self, services, register):
        register("ada")
        assert _login(services).principal.last_login is not None

    def test_email_is_case_insensitive(self, services, register):
        register("ada")
        assert isinstance(services.sessions.login("ADA@Example.com", PASSWORD), LoginResult)

    @pytest.mark.parametrize(
        "email, password",
        [
            ("ada@example.com", "wrong-password"),
            ("nobody@example.com", PASSWORD),
            ("", ""),
        ],
    )
    def test_failures_are_indistinguishable(self, services, register, email, password):
        register("ada")
        assert services.sessions.login(email, password) is Failure.INVALID_CREDENTIALS

    def test_inactive_principal_rejected(self, services, register):
        ada = register("ada")
        services.accounts.deactivate(ada.id)
        assert services.sessions.login("ada@example.com", PASSWORD) is Failure.INVALID_CREDENTIALS

    def test_unknown_email_still_runs_bcrypt(self, services, monkeypatch):
        calls = []
        monkeypatch.setattr(sessions_module, "burn_verification", lambda plain: calls.append(plain))
        services.sessions.login("ghost@example.com", "whatever")
        assert calls == ["whatever"]


class TestSecondFactorGate:
    def test_missing_code_issues_nothing(self, services, register, clock):
        ada = register("ada")
        _enroll(services, ada.id, clock)
        issued_before = services.ledger.count_issued(ada.id)

        result = services.sessions.login("ada@example.com", PASSWORD)
        assert isinstance(result, SecondFactorRequired)
        assert result.principal.id == ada.id
        assert services.ledger.count_issued(ada.id) == issued_before

    def test_wrong_code_is_invalid_credentials(self, services, register, clock):
        ada = register("ada")
        secret = _enroll(services, ada.id, clock)
        issued_before = services.ledger.count_issued(ada.id)
        wrong = _wrong_code(secret, clock)
        assert services.sessions.login("ada@example.com", PASSWORD, wrong) is Failure.INVALID_CREDENTIALS
        assert services.ledger.count_issued(ada.id) == issued_before

    def test_valid_code_completes_login(self, services, register, clock):
        ada = register("ada")
        secret = _enroll(services, ada.id, clock)
        clock.advance(seconds=30)
        result = _login(services, code=pyotp.TOTP(secret).at(clock()))
        assert result.principal.totp_enabled is True

    def test_wrong_password_with_valid_code_fails(self, services, register, clock):
        ada = register("ada")
        secret = _enroll(services, ada.id, clock)
        code = pyotp.TOTP(secret).at(clock())
        assert services.sessions.login("ada@example.com", "wrong-password", code) is Failure.INVALID_CREDENTIALS


class TestRefresh:
    def test_refresh_rotates(self, services, register, clock):
        ada = register("ada")
        first = _login(services).tokens
        second = services.sessions.refresh(first.refresh_token)
        assert isinstance(second, TokenPair)
        assert second.refresh_token != first.refresh_token
        assert services.ledger.count_usable(ada.id, clock(), TokenClass.refresh) == 1

    def test_refresh_token_is_single_use(self, services, register):
        register("ada")
        first = _login(services).tokens
        assert isinstance(services.sessions.refresh(first.refresh_token), TokenPair)
        assert services.sessions.refresh(first.refresh_token) is Failure.INVALID_OR_EXPIRED_TOKEN

    def test_replay_does_not_disturb_the_successor(self, services, register):
        register("ada")
        first = _login(services).tokens
        second = services.sessions.refresh(first.refresh_token)
        services.sessions.refresh(first.refresh_token)
        assert isinstance(services.sessions.refresh(second.refresh_token), TokenPair)

    def test_access_token_cannot_refresh(self, services, register):
        register("ada")
        tokens = _login(services).tokens
        assert services.sessions.refresh(tokens.access_token) is Failure.INVALID_OR_EXPIRED_TOKEN

    def test_expired_refresh_token(self, services, register, clock):
        register("ada")
        tokens = _login(services).tokens
        clock.advance(days=7)
        assert services.sessions.refresh(tokens.refresh_token) is Failure.INVALID_OR_EXPIRED_TOKEN

    def test_unknown_token(self, services):
        assert services.sessions.refresh("garbage") is Failure.INVALID_OR_EXPIRED_TOKEN

    def test_deactivated_principal_cannot_refresh(self, services, register):
        ada = register("ada")
        tokens = _login(services).tokens
        services.auth_store.update_principal(ada.id, is_active=False)
        assert services.sessions.refresh(tokens.refresh_token) is Failure.INVALID_OR_EXPIRED_TOKEN


class TestAuthenticate:
    def test_valid_access_token(self, services, register):
        ada = register("ada")
        tokens = _login(services).tokens
        principal = services.sessions.authenticate(tokens.access_token)
        assert isinstance(principal, PublicPrincipal)
        assert principal.id == ada.id

    def test_refresh_token_is_not_an_access_token(self, services, register):
        register("ada")
        tokens = _login(services).tokens
        assert services.sessions.authenticate(tokens.refresh_token) is Failure.INVALID_OR_EXPIRED_TOKEN

    def test_signed_but_unrecorded_token_rejected(self, services, register):
        ada = register("ada")
        stray = services.issuer.mint(services.auth_store.get_by_id(ada.id), TokenClass.access)
        assert services.sessions.authenticate(stray.token) is Failure.INVALID_OR_EXPIRED_TOKEN

    def test_expired_access_token(self, services, register, clock):
        register("ada")
        tokens = _login(services).tokens
        clock.advance(minutes=15)
        assert services.sessions.authenticate(tokens.access_token) is Failure.INVALID_OR_EXPIRED_TOKEN


class TestLogout:
    def test_logout_revokes_only_presented_token(self, services, register):
        register("ada")
        tokens = _login(services).tokens
        services.sessions.logout(tokens.access_token)
        assert services.sessions.authenticate(tokens.access_token) is Failure.INVALID_OR_EXPIRED_TOKEN
        assert isinstance(services.sessions.refresh(tokens.refresh_token), TokenPair)

    def test_logout_is_idempotent(self, services, register):
        register("ada")
        tokens = _login(services).tokens
        services.sessions.logout(tokens.access_token)
        services.sessions.logout(tokens.access_token)
        services.sessions.logout("never-issued")

    def test_logout_leaves_other_principals_tokens(self, services, register):
        ada = register("ada")
        register("bob")
        bob_tokens = _login(services, email="bob@example.com").tokens

        assert services.sessions.logout(bob_tokens.refresh_token, ada.id) is False
        assert isinstance(services.sessions.refresh(bob_tokens.refresh_token), TokenPair)

    def test_logout_scoped_to_owner_revokes(self, services, register):
        ada = register("ada")
        tokens = _login(services).tokens
        assert services.sessions.logout(tokens.refresh_token, ada.id) is True
        assert services.sessions.refresh(tokens.refresh_token) is Failure.INVALID_OR_EXPIRED_TOKEN

    def test_logout_all_invalidates_every_session(self, services, register, clock):
        ada = register("ada")
        phone = _login(services).tokens
        laptop = _login(services).tokens

        assert services.sessions.logout_all(ada.id) == 4
        for pair in (phone, laptop):
            assert services.sessions.authenticate(pair.access_token) is Failure.INVALID_OR_EXPIRED_TOKEN
            assert services.sessions.refresh(pair.refresh_token) is Failure.INVALID_OR_EXPIRED_TOKEN
        assert services.ledger.count_usable(ada.id, clock()) == 0
