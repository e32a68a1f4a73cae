"""
auth/passwords.py -- Password hashing and verification.

Passwords: bcrypt used directly (no passlib wrapper). bcrypt's cost factor is
the point -- it makes offline brute force of a leaked hash expensive. The
same cost makes it CPU-heavy, so PasswordHasher runs it on a dedicated
thread pool: a burst of login attempts queues behind its own workers instead
of occupying the event loop or the threadpool that serves other requests.
The caller still awaits the result.

verify_password() is a pure function of (candidate, stored hash). It needs no
store and no connection, so it is unit-testable on its own. bcrypt.checkpw
compares digests in constant time.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor

import bcrypt

from auth.models import User

# bcrypt only reads the first 72 bytes of its input. Longer passwords are
# rejected instead of being silently truncated.
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError for passwords longer than MAX_PASSWORD_BYTES. The API
    layer validates length first, so this only fires for programmatic callers.
    """
    encoded = plain.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes.")
    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Over-long candidate or a corrupt stored hash: neither can match.
        return False


def verify_user_password(user: User, candidate: str) -> bool:
    """Check a candidate password against a user record. Passwordless accounts never match."""
    if user.password_hash is None:
        return False
    return verify_password(candidate, user.password_hash)


class PasswordHasher:
    """Runs bcrypt on a dedicated executor.

    Usage:
        hasher = PasswordHasher(rounds=12, workers=4)
        hashed = await hasher.hash("Secret123")
        ok = await hasher.verify("Secret123", hashed)
        hasher.close()
    """

    def __init__(self, rounds: int = 12, workers: int = 4) -> None:
        self.rounds = rounds
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pwhash")
        # Timing equalization: verified against when the email is unknown or
        # the account has no password, so those paths cost one bcrypt run too.
        # Computed at the configured cost so both paths take the same time.
        self.dummy_hash = hash_password("propertydesk_timing_dummy", rounds)

    async def hash(self, plain: str) -> str:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, hash_password, plain, self.rounds)

    async def verify(self, plain: str, hashed: str | None) -> bool:
        """Verify on the executor. A None hash burns a dummy check and returns False."""
        loop = asyncio.get_running_loop()
        if hashed is None:
            await loop.run_in_executor(self._executor, verify_password, plain, self.dummy_hash)
            return False
        return await loop.run_in_executor(self._executor, verify_password, plain, hashed)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
