"""
auth/errors.py -- Failure taxonomy for the identity core.

Every failure a component can report is one of these kinds. The internal
``code`` is precise and is what gets logged. The ``public_code`` and
``public_message`` are what a client sees, and they are deliberately coarse:
a bad password and an unknown email both read "invalid credentials", and a
forged, garbled or expired token all read "unauthorized".

Only StoreUnavailable is retryable. Authentication and authorization failures
are terminal for the request.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all identity and access failures."""

    code = "auth_error"
    status_code = 400
    public_code = "auth_error"
    public_message = "Request could not be completed."
    retryable = False

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.code)
        self.detail = detail


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    public_code = "invalid_credentials"
    public_message = "Invalid email or password."


class Unauthorized(AuthError):
    """No token, or a token that does not authenticate anyone."""

    code = "unauthorized"
    status_code = 401
    public_code = "unauthorized"
    public_message = "Authentication required."


class TokenExpired(Unauthorized):
    code = "token_expired"


class MalformedToken(Unauthorized):
    code = "malformed_token"


class InvalidSignature(Unauthorized):
    code = "invalid_signature"


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status_code = 409
    public_code = "conflict"
    public_message = "An account with that email already exists."


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    public_code = "not_found"
    public_message = "Not found."


class ExpiredOrInvalidCode(AuthError):
    code = "expired_or_invalid_code"
    status_code = 400
    public_code = "invalid_code"
    public_message = "Invalid or expired verification code."


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403
    public_code = "forbidden"
    public_message = "Admin access required."


class StoreUnavailable(AuthError):
    code = "store_unavailable"
    status_code = 503
    public_code = "service_unavailable"
    public_message = "Service temporarily unavailable. Please retry."
    retryable = True
