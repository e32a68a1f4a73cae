"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Two token sources are checked in priority order:
  1. Authorization: Bearer <token> header -- API clients. An explicit header
     wins over whatever cookie the browser happens to hold.
  2. The "auth_token" cookie -- set by the login and verify-code responses.

get_current_user() raises Unauthorized (or one of its subclasses) when no
valid token is present or the token's user no longer exists.
require_admin() additionally runs the AuthorizationGate, which raises
Forbidden unless the user's email is on the whitelist right now.

Both raise auth.errors kinds rather than HTTPException; api/main.py maps
them onto the error envelope and logs the precise internal kind.

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi because it is part of the
  FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.credentials import CredentialStore
from auth.errors import Unauthorized
from auth.gate import AuthorizationGate
from auth.models import User
from auth.tokens import COOKIE_NAME, TokenService


def extract_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(COOKIE_NAME) or None


def get_current_user(request: Request) -> User:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    token = extract_token(request)
    if token is None:
        raise Unauthorized("no token")
    tokens: TokenService = request.app.state.tokens
    claims = tokens.verify(token)
    credentials: CredentialStore = request.app.state.credentials
    user = credentials.find_by_id(claims.user_id)
    if user is None:
        raise Unauthorized("token subject no longer exists")
    return user


def require_admin(request: Request) -> User:
    """Require whitelist elevation. 401 if unauthenticated, 403 if not whitelisted.

    The whitelist is consulted on every call -- nothing about elevation is
    cached on the request, the token, or the user record.
    """
    user = get_current_user(request)
    gate: AuthorizationGate = request.app.state.gate
    gate.require_admin(user.email)
    return user
