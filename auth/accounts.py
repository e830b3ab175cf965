"""
auth/accounts.py -- Registration, password change and deactivation.

The first principal ever registered becomes the administrator: role label
"Administrator" and the Administrator system role. Everyone after that starts
as "Team Member". System roles must be seeded (AccessResolver.
ensure_system_roles) before the first registration for the role assignment to
happen; the label is set regardless.

Password change and deactivation both end every live session of the
principal (SessionOrchestrator.logout_all).

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import Failure
from auth.models import Principal, PublicPrincipal, to_public
from auth.passwords import hash_password, verify_password
from auth.permissions import ADMINISTRATOR, TEAM_MEMBER
from auth.sessions import SessionOrchestrator
from auth.store import AuthStore

logger = logging.getLogger("taskgate.auth")


class AccountService:
    def __init__(self, store: AuthStore, sessions: SessionOrchestrator) -> None:
        self.store = store
        self.sessions = sessions

    def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
    ) -> PublicPrincipal | Failure:
        email = email.strip().lower()
        if self.store.get_by_email(email) is not None:
            return Failure.EMAIL_TAKEN
        if self.store.get_by_username(username) is not None:
            return Failure.USERNAME_TAKEN

        first = not self.store.has_principals()
        label = ADMINISTRATOR if first else TEAM_MEMBER
        principal = Principal(
            username=username,
            email=email,
            role=label,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
        )
        try:
            principal_id = self.store.create_principal(principal)
        except IntegrityError:
            # Lost a race with a concurrent registration of the same identity.
            return Failure.EMAIL_TAKEN if self.store.get_by_email(email) else Failure.USERNAME_TAKEN

        role = self.store.get_role_by_name(label)
        if role is not None:
            self.store.assign_role(principal_id, role.id)
        logger.info("Registered principal %d as %s", principal_id, label)
        return to_public(self.store.get_by_id(principal_id))

    def change_password(self, principal_id: int, current_password: str, new_password: str) -> None | Failure:
        principal = self.store.get_by_id(principal_id)
        if principal is None:
            return Failure.PRINCIPAL_NOT_FOUND
        if not principal.password_hash or not verify_password(current_password, principal.password_hash):
            return Failure.INVALID_CREDENTIALS
        self.store.update_principal(principal_id, password_hash=hash_password(new_password))
        self.sessions.logout_all(principal_id)
        logger.info("Password changed for principal %d", principal_id)
        return None

    def deactivate(self, principal_id: int) -> None | Failure:
        if self.store.get_by_id(principal_id) is None:
            return Failure.PRINCIPAL_NOT_FOUND
        self.store.update_principal(principal_id, is_active=False)
        self.sessions.logout_all(principal_id)
        logger.info("Deactivated principal %d", principal_id)
        return None

    def list_principals(self) -> list[PublicPrincipal]:
        return [to_public(p) for p in self.store.list_principals()]

    def get_principal(self, principal_id: int) -> PublicPrincipal | Failure:
        principal = self.store.get_by_id(principal_id)
        return to_public(principal) if principal is not None else Failure.PRINCIPAL_NOT_FOUND
