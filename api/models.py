"""
API request and response models for PropertyDesk REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

No response model has a password or hash field -- there is no path by which
a stored hash can be serialized to a client.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, field_validator

from auth.models import AdminWhitelistEntry, User, normalize_email
from auth.passwords import MAX_PASSWORD_BYTES, MIN_PASSWORD_LENGTH

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
CODE_PATTERN = r"^\d{6,12}$"


def _normalize(value: str) -> str:
    return normalize_email(value) if isinstance(value, str) else value


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
    return value


# Annotated types: constraints validate the normalized value, since the
# BeforeValidator wraps the constrained str schema.
_Email = Annotated[str, Field(max_length=320, pattern=EMAIL_PATTERN), BeforeValidator(_normalize)]
_Password = Annotated[
    str,
    Field(min_length=MIN_PASSWORD_LENGTH, max_length=MAX_PASSWORD_BYTES),
    AfterValidator(_check_password_bytes),
]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    email: _Email
    password: _Password
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, value: str) -> str:
        return value.strip()


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    No pattern on email here: a malformed email is just another failed login,
    not a validation error that tells the caller something about the input.
    """

    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=255)


class EmailSigninRequest(BaseModel):
    """Request body for POST /api/v1/auth/email-signin.

    The profile fields are only needed when the email is not registered yet.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: _Email
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=40)

    @property
    def has_profile(self) -> bool:
        return bool(self.first_name and self.phone_number)


class VerifyCodeRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-code."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: _Email
    code: str = Field(pattern=CODE_PATTERN)


class WhitelistAddRequest(BaseModel):
    """Request body for POST /api/v1/admin/whitelist."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: _Email
    full_name: str = Field(min_length=1, max_length=200)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserSummary(BaseModel):
    """The identity fields returned alongside a freshly issued token."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str
    last_name: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id or "",
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
        )


class UserProfile(BaseModel):
    """Full profile for GET /auth/me and the admin user list. Never includes the hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    first_name: str
    last_name: str
    phone_number: Optional[str]
    role: str
    is_admin: bool
    email_verified: bool
    has_password: bool
    created_at: str
    last_login: Optional[str]

    @classmethod
    def from_user(cls, user: User) -> "UserProfile":
        return cls(
            id=user.id or "",
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            phone_number=user.phone_number,
            role=user.role,
            is_admin=user.is_admin,
            email_verified=user.email_verified,
            has_password=user.password_hash is not None,
            created_at=user.created_at or "",
            last_login=user.last_login,
        )


class UserListResponse(BaseModel):
    """One page of GET /api/v1/admin/users."""

    model_config = ConfigDict(frozen=True)

    users: list[UserProfile]
    total_pages: int
    current_page: int
    total_users: int


class AuthResponse(BaseModel):
    """Response for signup, login and verify-code."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserSummary


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserProfile


class ExistsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    exists: bool


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class EmailSigninResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    requires_profile: bool = False


class WhitelistEntryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    full_name: str
    role: str
    is_admin: bool
    added_by: str
    created_at: str

    @classmethod
    def from_entry(cls, entry: AdminWhitelistEntry) -> "WhitelistEntryResponse":
        return cls(
            id=entry.id or 0,
            email=entry.email,
            full_name=entry.full_name,
            role=entry.role,
            is_admin=entry.is_admin,
            added_by=entry.added_by,
            created_at=entry.created_at or "",
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    retryable: bool = False


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
