"""
auth/models.py -- Domain dataclasses for identity and access entities.

Pattern: Data class (pure data container, zero logic). Stores and services
do the work; these only carry shape.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field

WHITELIST_ROLES = frozenset({"admin"})


def normalize_email(email: str | None) -> str:
    """Return the canonical form used for every email lookup and uniqueness check."""
    return (email or "").strip().lower()


@dataclass
class User:
    """A registered identity on the site.

    password_hash is None for passwordless accounts created through the
    email sign-in flow. It is excluded from repr so it never lands in logs.

    is_admin is informational only. Elevation is decided by the admin
    whitelist on every request, never by this flag.
    """

    email: str
    first_name: str = ""
    last_name: str = ""
    id: str | None = None
    password_hash: str | None = field(default=None, repr=False)
    phone_number: str | None = None
    role: str = "user"  # "user" or "admin"
    is_admin: bool = False
    email_verified: bool = False
    created_at: str | None = None
    last_login: str | None = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass
class AdminWhitelistEntry:
    """An email granted back-office access.

    Presence of the entry is the only source of truth for elevation.
    added_by records the email of the granting principal ("bootstrap" or
    "cli" for entries created outside a request).
    """

    email: str
    full_name: str
    added_by: str
    role: str = "admin"
    is_admin: bool = True
    id: int | None = None
    created_at: str | None = None


@dataclass
class VerificationCode:
    """A short-lived, single-use email verification code.

    expires_at and created_at are epoch seconds (float) so expiry checks are
    plain numeric comparisons inside SQL.
    """

    email: str
    code: str
    expires_at: float
    created_at: float

    def is_active(self, now: float) -> bool:
        return now < self.expires_at


@dataclass(frozen=True)
class TokenClaims:
    """The verified contents of a bearer token."""

    user_id: str
    issued_at: int
    expires_at: int
