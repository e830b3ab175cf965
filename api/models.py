"""
API request and response models for TaskGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
projects/models.py, which own the internal domain representation. Route
handlers map between the two.

Separation of concerns: auth/ + projects/ models = domain truth; api/ models = API contract.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TOTP_CODE_PATTERN = r"^\d{6}$"
USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MembershipRoleEnum(str, Enum):
    member = "member"
    viewer = "viewer"


# ---------------------------------------------------------------------------
# Shared envelopes
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    totp_code is only needed when the account has 2FA enabled. Omitting it for
    such an account yields requires_two_factor=true and no tokens.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=128)
    totp_code: Optional[str] = Field(default=None, max_length=6)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(BaseModel):
    """Optional body for POST /api/v1/auth/logout: also revoke this refresh token."""

    refresh_token: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128)
    new_password: str = Field(min_length=8, max_length=128)


class TotpCodeRequest(BaseModel):
    """Request body for the 2FA verify/enable/disable endpoints."""

    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(pattern=TOTP_CODE_PATTERN)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class PrincipalResponse(BaseModel):
    """Redacted principal. Built from auth.models.PublicPrincipal only."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    role: str
    first_name: str = ""
    last_name: str = ""
    is_active: bool
    totp_enabled: bool
    last_login: Optional[str] = None
    created_at: str = ""


class TokenPairResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    access_expires_at: str
    refresh_expires_at: str


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login.

    When requires_two_factor is true, tokens is null: nothing was issued.
    """

    model_config = ConfigDict(frozen=True)

    requires_two_factor: bool = False
    principal: PrincipalResponse
    tokens: Optional[TokenPairResponse] = None


class LogoutAllResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    revoked: int


class TotpSetupResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    secret: str
    provisioning_uri: str


class TotpStatusResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool


class TotpVerifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=255)
    permissions: list[str] = Field(default_factory=list)


class RolePatch(BaseModel):
    """All fields optional; only those present are changed."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    description: Optional[str] = Field(default=None, max_length=255)
    permissions: Optional[list[str]] = None


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None
    is_system: bool
    permissions: list[str]
    created_at: str = ""
    updated_at: str = ""


class RoleAssignmentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    principal_id: int
    role_id: int
    assigned_at: str = ""


class PermissionsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    principal_id: int
    permissions: list[str]


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)


class ProjectPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)


class ProjectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str = ""
    owner_id: int
    created_at: str = ""
    updated_at: str = ""


class MemberAdd(BaseModel):
    principal_id: int = Field(gt=0)
    role: MembershipRoleEnum = MembershipRoleEnum.member


class MemberPatch(BaseModel):
    role: MembershipRoleEnum


class MemberResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    principal_id: int
    role: str
    joined_at: str = ""
