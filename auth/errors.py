"""
auth/errors.py -- Failure taxonomy for the auth core.

Domain failures are returned, not raised. Every operation that can fail for a
domain reason returns either its success payload or a Failure member, so each
call site has to look at the negative case:

    result = sessions.refresh(token)
    if isinstance(result, Failure):
        ...

Categories are deliberately coarse where distinguishing them would leak
information: a wrong password, an unknown email, and a wrong TOTP code at
login are all INVALID_CREDENTIALS; an absent, revoked, expired or forged
credential is always INVALID_OR_EXPIRED_TOKEN.

InfrastructureFailure is the one exception type. Stores raise it when the
database is unreachable or errors out; it propagates to the transport layer
unchanged and the core never retries.
"""

from __future__ import annotations

from enum import Enum

from core.db import InfrastructureFailure

__all__ = ["Failure", "InfrastructureFailure"]


class Failure(str, Enum):
    # Authentication
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_OR_EXPIRED_TOKEN = "invalid_or_expired_token"
    INVALID_SECOND_FACTOR = "invalid_second_factor"
    SECOND_FACTOR_ACTIVE = "second_factor_active"

    # Global roles
    ROLE_NOT_FOUND = "role_not_found"
    ALREADY_ASSIGNED = "already_assigned"
    ASSIGNMENT_NOT_FOUND = "assignment_not_found"
    IMMUTABLE_ROLE = "immutable_role"
    ROLE_NAME_TAKEN = "role_name_taken"
    UNKNOWN_PERMISSION = "unknown_permission"

    # Accounts
    PRINCIPAL_NOT_FOUND = "principal_not_found"
    EMAIL_TAKEN = "email_taken"
    USERNAME_TAKEN = "username_taken"

    # Projects
    PROJECT_NOT_FOUND = "project_not_found"
    ACCESS_DENIED = "access_denied"
    ALREADY_MEMBER = "already_member"
    MEMBER_NOT_FOUND = "member_not_found"
