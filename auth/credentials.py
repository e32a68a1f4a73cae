"""
auth/credentials.py -- CredentialStore: user identity records plus password checks.

Composes the UserStore repository with the PasswordHasher pool. Hashing
happens here, before anything reaches the repository, so plaintext never
crosses the storage boundary.

authenticate() runs bcrypt whether or not the email exists:
  - Unknown email: bcrypt runs against the dummy hash (same cost as a real check)
  - Passwordless account: same dummy run
  - Wrong password: bcrypt runs against the real hash
All three raise the same InvalidCredentials, so neither the response body
nor its timing reveals which half of the attempt failed.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.errors import InvalidCredentials, NotFound
from auth.models import User, normalize_email
from auth.passwords import PasswordHasher, verify_user_password
from auth.store import UserStore

logger = logging.getLogger("propertydesk.auth.credentials")


class CredentialStore:
    """Owns user identity records and password verification."""

    def __init__(self, users: UserStore, hasher: PasswordHasher) -> None:
        self.users = users
        self.hasher = hasher

    async def create(
        self,
        email: str,
        password: str | None,
        first_name: str = "",
        last_name: str = "",
        phone_number: str | None = None,
        role: str = "user",
    ) -> User:
        """Register a new user. Raises DuplicateEmail if the normalized email exists.

        password=None creates a passwordless account (email sign-in flow);
        such an account can only authenticate through a verification code.
        """
        normalized = normalize_email(email)
        if not normalized:
            raise ValueError("email is required")
        hashed = await self.hasher.hash(password) if password is not None else None
        user = User(
            email=normalized,
            password_hash=hashed,
            first_name=first_name,
            last_name=last_name,
            phone_number=phone_number,
            role=role,
        )
        user.id = self.users.create_user(user)
        logger.info("User created id=%s", user.id)
        return self.users.get_by_id(user.id) or user

    def find_by_email(self, email: str) -> User | None:
        return self.users.get_by_email(email)

    def find_by_id(self, user_id: str) -> User | None:
        return self.users.get_by_id(user_id)

    def exists(self, email: str) -> bool:
        return self.users.exists(email)

    def activate(self, email: str) -> User:
        """Mark the email verified after a code was consumed. Raises NotFound if no such user."""
        if not self.users.mark_email_verified(email):
            raise NotFound("user")
        user = self.users.get_by_email(email)
        if user is None:
            raise NotFound("user")
        return user

    @staticmethod
    def verify_password(user: User, candidate: str) -> bool:
        """Pure check of a candidate against the user's stored hash. Needs no store."""
        return verify_user_password(user, candidate)

    async def authenticate(self, email: str, password: str) -> User:
        """Return the user for a correct email/password pair, else raise InvalidCredentials."""
        user = self.users.get_by_email(email)
        stored_hash = user.password_hash if user is not None else None
        # Always run bcrypt -- do NOT return early before the check.
        if not await self.hasher.verify(password, stored_hash) or user is None:
            logger.info("Login failed (%s)", "unknown_email" if user is None else "bad_password")
            raise InvalidCredentials()
        self.users.update_last_login(user.id)
        return user
