"""
auth/codes.py -- Short-lived, single-use email verification codes.

Lifecycle: Created (active) -> Consumed | Expired. Both end states are terminal.

  generate(email) replaces any existing record for the email inside one
  transaction, so at most one code is active per email. The UNIQUE
  constraint on email backs this up: a concurrent generate that loses the
  race fails with IntegrityError instead of leaving two live codes.

  verify(email, code) is one conditional DELETE:
      DELETE FROM verification_codes
      WHERE email = :email AND code = :code AND expires_at > :now
  The row count says whether this call consumed the code. There is no
  separate SELECT before it, so two concurrent verifies of the same code
  cannot both succeed -- the database serializes the deletes and only one
  sees a row.

Expiry is checked on read: an expired record never matches the WHERE clause
above regardless of whether anything has deleted it yet. purge_expired()
exists for housekeeping only; no guarantee depends on it running.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable

from sqlalchemy import Column, Float, String, Table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.db import metadata, store_errors
from auth.errors import ExpiredOrInvalidCode, StoreUnavailable
from auth.models import VerificationCode, normalize_email

logger = logging.getLogger("propertydesk.auth.codes")

_DEFAULT_TTL = 10 * 60  # 10 minutes in seconds

_codes = Table(
    "verification_codes",
    metadata,
    Column("email", String(320), primary_key=True),
    Column("code", String(16), nullable=False),
    Column("expires_at", Float, nullable=False, index=True),
    Column("created_at", Float, nullable=False),
)


def generate_code(length: int = 6) -> str:
    """Return a human-enterable numeric code of the given length from a CSPRNG."""
    return f"{secrets.randbelow(10**length):0{length}d}"


class VerificationCodeStore:
    """Owns verification codes.

    Usage:
        codes = VerificationCodeStore(engine, ttl=600)
        code = codes.generate("bob@example.com")
        codes.verify("bob@example.com", code)   # succeeds once
        codes.verify("bob@example.com", code)   # raises ExpiredOrInvalidCode
    """

    def __init__(
        self,
        engine: Engine,
        ttl: int = _DEFAULT_TTL,
        code_length: int = 6,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.engine = engine
        self.ttl = ttl
        self.code_length = code_length
        self._clock = clock
        with store_errors("create verification_codes table"):
            _codes.create(engine, checkfirst=True)

    def generate(self, email: str) -> str:
        """Issue a fresh code for email, superseding any previous one."""
        normalized = normalize_email(email)
        if not normalized:
            raise ValueError("email is required")
        code = generate_code(self.code_length)
        now = self._clock()
        with store_errors("generate verification code"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(_codes.delete().where(_codes.c.email == normalized))
                    conn.execute(
                        _codes.insert().values(
                            email=normalized,
                            code=code,
                            expires_at=now + self.ttl,
                            created_at=now,
                        )
                    )
            except IntegrityError as exc:
                # A concurrent generate for the same email committed first.
                raise StoreUnavailable("generate verification code") from exc
        logger.info("Verification code issued (ttl=%ds)", self.ttl)
        return code

    def verify(self, email: str, candidate: str) -> None:
        """Consume the active code for email. Raises ExpiredOrInvalidCode on any mismatch."""
        normalized = normalize_email(email)
        candidate = (candidate or "").strip()
        if not normalized or not candidate:
            raise ExpiredOrInvalidCode()
        with store_errors("verify code"), self.engine.begin() as conn:
            result = conn.execute(
                _codes.delete().where(
                    (_codes.c.email == normalized)
                    & (_codes.c.code == candidate)
                    & (_codes.c.expires_at > self._clock())
                )
            )
        if result.rowcount != 1:
            raise ExpiredOrInvalidCode()

    def get_active(self, email: str) -> VerificationCode | None:
        """Return the unexpired record for email, if any."""
        with store_errors("get active code"), self.engine.connect() as conn:
            row = conn.execute(
                _codes.select().where(
                    (_codes.c.email == normalize_email(email)) & (_codes.c.expires_at > self._clock())
                )
            ).fetchone()
        if row is None:
            return None
        return VerificationCode(email=row.email, code=row.code, expires_at=row.expires_at, created_at=row.created_at)

    def purge_expired(self) -> int:
        """Delete all expired records. Returns number of rows removed."""
        with store_errors("purge expired codes"), self.engine.begin() as conn:
            result = conn.execute(_codes.delete().where(_codes.c.expires_at <= self._clock()))
        return result.rowcount
