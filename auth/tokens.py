"""
auth/tokens.py -- Stateless signed bearer tokens.

Security design decisions:
  JWS: python-jose with HS256. The token carries only {sub, iat, exp}: the
       user id, issue time and absolute expiry in epoch seconds. The HMAC
       covers header and payload, so any mutation invalidates it.

  No elevation claim: admin rights are never embedded. The AuthorizationGate
       consults the whitelist on every admin request instead, so revoking an
       entry does not wait for token expiry.

  Verification order: structure (MalformedToken), then signature
       (InvalidSignature), then expiry (TokenExpired). Signature is checked
       before any claim is trusted. Expiry is compared against an injectable
       clock rather than left to the library, so it is testable without
       sleeping.

  Secret: handed to TokenService once at startup and never mutated. There is
       no revocation list -- rotating SECRET_KEY and restarting invalidates
       every outstanding token with no grace period.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Callable

from jose import jwk, jwt
from jose.utils import base64url_decode, base64url_encode

from auth.errors import InvalidSignature, MalformedToken, TokenExpired
from auth.models import TokenClaims

_ALGORITHM = "HS256"
_DEFAULT_TTL = 7 * 24 * 3600  # 7 days in seconds

COOKIE_NAME = "auth_token"

# Unpadded base64url only. Anything else is not a token we issued.
_SEGMENT_RE = re.compile(r"[A-Za-z0-9_-]*")


class TokenService:
    """Issues and verifies signed bearer tokens.

    Usage:
        tokens = TokenService(secret_key, ttl=7 * 24 * 3600)
        token = tokens.issue("u1")
        claims = tokens.verify(token)   # TokenClaims(user_id="u1", ...)
    """

    def __init__(self, secret_key: str, ttl: int = _DEFAULT_TTL, clock: Callable[[], float] = time.time) -> None:
        if not secret_key:
            raise ValueError("secret_key is required")
        self._secret_key = secret_key
        self._key = jwk.construct(secret_key, _ALGORITHM)
        self.ttl = ttl
        self._clock = clock

    def issue(self, user_id: str) -> str:
        issued_at = int(self._clock())
        payload = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + self.ttl,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> TokenClaims:
        """Return the verified claims or raise MalformedToken / InvalidSignature / TokenExpired."""
        if not token or token.count(".") != 2:
            raise MalformedToken("token must have three segments")
        header_seg, payload_seg, signature_seg = token.split(".")
        if not (_SEGMENT_RE.fullmatch(header_seg) and _SEGMENT_RE.fullmatch(payload_seg)):
            raise MalformedToken("non-base64url characters")
        try:
            header = json.loads(base64url_decode(header_seg.encode("ascii")))
            raw = base64url_decode(payload_seg.encode("ascii"))
        except ValueError as exc:
            raise MalformedToken("undecodable segment") from exc
        if not isinstance(header, dict) or header.get("alg") != _ALGORITHM:
            raise MalformedToken("unexpected algorithm")

        signature = _decode_signature(signature_seg)
        # HMAC comparison is constant-time inside jose's HMACKey.verify.
        if not self._key.verify(f"{header_seg}.{payload_seg}".encode("ascii"), signature):
            raise InvalidSignature()

        claims = _parse_claims(raw)
        if self._clock() > claims.expires_at:
            raise TokenExpired()
        return claims

    @property
    def cookie_max_age(self) -> int:
        return self.ttl


def _decode_signature(segment: str) -> bytes:
    """Decode the signature segment, accepting only its canonical spelling.

    base64url leaves spare low bits in the final character, so several
    strings decode to the same bytes. Requiring the re-encoded bytes to
    match the segment exactly means any edit to the text is rejected.
    """
    if not _SEGMENT_RE.fullmatch(segment):
        raise InvalidSignature("non-base64url signature")
    try:
        signature = base64url_decode(segment.encode("ascii"))
    except ValueError as exc:
        raise InvalidSignature("undecodable signature") from exc
    if base64url_encode(signature) != segment.encode("ascii"):
        raise InvalidSignature("non-canonical signature encoding")
    return signature


def _parse_claims(raw: bytes) -> TokenClaims:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedToken("payload is not JSON") from exc
    if not isinstance(payload, dict):
        raise MalformedToken("payload is not an object")
    sub, iat, exp = payload.get("sub"), payload.get("iat"), payload.get("exp")
    if not isinstance(sub, str) or not sub:
        raise MalformedToken("missing sub")
    # bool is an int subclass; reject it explicitly.
    if not all(isinstance(v, int) and not isinstance(v, bool) for v in (iat, exp)):
        raise MalformedToken("iat/exp must be integers")
    return TokenClaims(user_id=sub, issued_at=iat, expires_at=exp)


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, max_age: int, secure: bool = False) -> None:
    """Write the token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    max_age: matches the token expiry so both expire together.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )
