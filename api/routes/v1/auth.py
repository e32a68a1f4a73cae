"""
api/routes/v1/auth.py -- Authentication and verification REST endpoints.

Routes:
  POST /api/v1/auth/signup        -- register with email + password; returns token
  POST /api/v1/auth/login         -- password login; returns token and sets cookie
  POST /api/v1/auth/logout        -- clears cookie
  GET  /api/v1/auth/me            -- current user profile (requires auth)
  GET  /api/v1/auth/check-user    -- does this email have an account?
  POST /api/v1/auth/email-signin  -- issue a verification code (creating a
                                     passwordless account if profile given)
  POST /api/v1/auth/verify-code   -- consume a code; returns token and sets cookie

Security:
  POST /login, /check-user, /email-signin and /verify-code are rate-limited per IP.
  CredentialStore.authenticate() provides timing equalization -- use it, never inline.
  Login failures are one generic "invalid_credentials" whatever the cause.
  Cache-Control: no-store on every response that carries a token.
  /check-user answers for any email without authentication. That is an
  account-enumeration exposure, kept because the sign-in UI depends on it;
  the rate limit is the only mitigation.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from api.limiter import code_limit, limiter, login_limit
from api.models import (
    AuthResponse,
    EmailSigninRequest,
    EmailSigninResponse,
    ExistsResponse,
    LoginRequest,
    MeResponse,
    MessageResponse,
    SignupRequest,
    UserProfile,
    UserSummary,
    VerifyCodeRequest,
)
from auth.codes import VerificationCodeStore
from auth.credentials import CredentialStore
from auth.dependencies import get_current_user
from auth.errors import DuplicateEmail, StoreUnavailable
from auth.models import User
from auth.tokens import COOKIE_NAME, TokenService, set_auth_cookie
from core.config import get_settings

logger = logging.getLogger("propertydesk.api.auth")

# Auth policy:
# - POST /api/v1/auth/signup:        public
# - POST /api/v1/auth/login:         public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:        public -- clearing a cookie needs no prior auth
# - GET  /api/v1/auth/check-user:    public
# - POST /api/v1/auth/email-signin:  public
# - POST /api/v1/auth/verify-code:   public -- the code is the credential
# - GET  /api/v1/auth/me:            requires auth (get_current_user)
router = APIRouter()


def _token_response(user: User, tokens: TokenService, status_code: int = 200) -> JSONResponse:
    """Issue a token for user and return it in the body and as the auth cookie."""
    token = tokens.issue(user.id)
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=tokens.ttl,
            user=UserSummary.from_user(user),
        ).model_dump(),
    )
    set_auth_cookie(resp, token, tokens.cookie_max_age, secure=get_settings().secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Password flows
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
async def signup(request: Request, body: SignupRequest) -> JSONResponse:
    """Register a new account. 409 if the email is already registered."""
    credentials: CredentialStore = request.app.state.credentials
    user = await credentials.create(
        body.email,
        body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return _token_response(user, request.app.state.tokens, status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(login_limit)
async def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a token and set the cookie.

    Unknown email, wrong password and passwordless account all produce the
    same 401 "invalid_credentials" in the same time.
    """
    credentials: CredentialStore = request.app.state.credentials
    user = await credentials.authenticate(body.email, body.password)
    logger.info("Login succeeded id=%s", user.id)
    return _token_response(user, request.app.state.tokens)


@router.post("/auth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the auth cookie. The token itself stays valid until it expires."""
    resp = JSONResponse(content={"message": "Logged out."})
    resp.delete_cookie(COOKIE_NAME)
    return resp


# ---------------------------------------------------------------------------
# Authenticated
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return the profile of the authenticated user. The password hash is never included."""
    return MeResponse(user=UserProfile.from_user(current_user))


# ---------------------------------------------------------------------------
# Existence check and email-code flows
# ---------------------------------------------------------------------------


@router.get("/auth/check-user", response_model=ExistsResponse)
@limiter.limit(login_limit)
async def check_user(request: Request, email: str = Query(min_length=1, max_length=320)) -> ExistsResponse:
    credentials: CredentialStore = request.app.state.credentials
    return ExistsResponse(exists=credentials.exists(email))


@router.post("/auth/email-signin", response_model=EmailSigninResponse)
@limiter.limit(code_limit)
async def email_signin(request: Request, body: EmailSigninRequest) -> JSONResponse:
    """Send a verification code to email.

    Unknown email with first name and phone number: a passwordless account
    is created first. Unknown email without them: the client is told to
    collect a profile and try again.
    """
    credentials: CredentialStore = request.app.state.credentials
    codes: VerificationCodeStore = request.app.state.codes

    if credentials.find_by_email(body.email) is None:
        if not body.has_profile:
            return JSONResponse(
                content=EmailSigninResponse(message="Profile information required", requires_profile=True).model_dump()
            )
        try:
            await credentials.create(
                body.email,
                None,
                first_name=body.first_name or "",
                last_name=body.last_name or "",
                phone_number=body.phone_number,
            )
        except DuplicateEmail:
            # A concurrent request registered the same email first; carry on.
            pass

    code = codes.generate(body.email)
    request.app.state.code_delivery.deliver(body.email, code)
    return JSONResponse(
        status_code=202,
        content=EmailSigninResponse(message="Verification code sent").model_dump(),
    )


@router.post("/auth/verify-code", response_model=AuthResponse)
@limiter.limit(code_limit)
async def verify_code(request: Request, body: VerifyCodeRequest) -> JSONResponse:
    """Consume a verification code, mark the email verified, and sign the user in.

    Consuming the code and updating the user are separate writes. If the
    update fails after the code is gone, the caller gets a retryable 503 and
    has to request a new code; the failure is logged rather than hidden.
    """
    codes: VerificationCodeStore = request.app.state.codes
    credentials: CredentialStore = request.app.state.credentials

    codes.verify(body.email, body.code)
    try:
        user = credentials.activate(body.email)
    except StoreUnavailable as exc:
        logger.error("Verification code consumed but account activation failed")
        raise StoreUnavailable("Code was consumed; request a new code and retry.") from exc
    return _token_response(user, request.app.state.tokens)
