"""
api/errors.py -- Translate domain Failure values into HTTP errors.

The core returns Failure enum members; route handlers pass them to
failure_to_http() and raise the result. The detail dict becomes the "error"
field of the standard ErrorResponse envelope (see the HTTPException handler in
api/main.py).

    401  authentication failures
    403  authorization failures
    404  missing role / project / principal / assignment
    409  uniqueness and assignment conflicts
"""

from __future__ import annotations

from fastapi import HTTPException

from auth.errors import Failure

_STATUS: dict[Failure, int] = {
    Failure.INVALID_CREDENTIALS: 401,
    Failure.INVALID_OR_EXPIRED_TOKEN: 401,
    Failure.INVALID_SECOND_FACTOR: 401,
    Failure.ACCESS_DENIED: 403,
    Failure.IMMUTABLE_ROLE: 403,
    Failure.ROLE_NOT_FOUND: 404,
    Failure.PRINCIPAL_NOT_FOUND: 404,
    Failure.PROJECT_NOT_FOUND: 404,
    Failure.ASSIGNMENT_NOT_FOUND: 404,
    Failure.MEMBER_NOT_FOUND: 404,
    Failure.ALREADY_ASSIGNED: 409,
    Failure.ALREADY_MEMBER: 409,
    Failure.ROLE_NAME_TAKEN: 409,
    Failure.EMAIL_TAKEN: 409,
    Failure.USERNAME_TAKEN: 409,
    Failure.SECOND_FACTOR_ACTIVE: 409,
    Failure.UNKNOWN_PERMISSION: 422,
}

_MESSAGES: dict[Failure, str] = {
    Failure.INVALID_CREDENTIALS: "Invalid email or password.",
    Failure.INVALID_OR_EXPIRED_TOKEN: "Token is invalid or expired.",
    Failure.INVALID_SECOND_FACTOR: "Invalid authentication code.",
    Failure.ACCESS_DENIED: "You do not have access to this resource.",
    Failure.IMMUTABLE_ROLE: "System roles cannot be modified or deleted.",
    Failure.ROLE_NOT_FOUND: "Role not found.",
    Failure.PRINCIPAL_NOT_FOUND: "User not found.",
    Failure.PROJECT_NOT_FOUND: "Project not found.",
    Failure.ASSIGNMENT_NOT_FOUND: "User does not have this role.",
    Failure.MEMBER_NOT_FOUND: "User is not a member of this project.",
    Failure.ALREADY_ASSIGNED: "User already has this role.",
    Failure.ALREADY_MEMBER: "User is already a member of this project.",
    Failure.ROLE_NAME_TAKEN: "A role with that name already exists.",
    Failure.EMAIL_TAKEN: "Email already registered.",
    Failure.USERNAME_TAKEN: "Username already taken.",
    Failure.SECOND_FACTOR_ACTIVE: "Two-factor authentication is already enabled.",
    Failure.UNKNOWN_PERMISSION: "Unknown permission string.",
}


def status_for(failure: Failure) -> int:
    return _STATUS.get(failure, 400)


def failure_to_http(failure: Failure) -> HTTPException:
    """Build (not raise) the HTTPException for a domain failure."""
    headers = {"WWW-Authenticate": "Bearer"} if status_for(failure) == 401 else None
    return HTTPException(
        status_code=status_for(failure),
        detail={"code": failure.value, "message": _MESSAGES.get(failure, "Request failed.")},
        headers=headers,
    )
