"""
api/routes/v1/admin.py -- Back-office endpoints gated by the admin whitelist.

Routes:
  GET    /api/v1/admin/whitelist          -- list whitelisted emails
  POST   /api/v1/admin/whitelist          -- whitelist an email
  DELETE /api/v1/admin/whitelist/{email}  -- revoke an email's elevation
  GET    /api/v1/admin/users              -- page through users (role, search, limit, page)

Every route depends on require_admin, which re-reads the whitelist on each
request. Removing an entry locks its owner out on their next request even
though their token is still valid.

Guards:
  DELETE refuses to remove the last entry -- with an empty whitelist there is
  no way back into the back office short of the CLI or bootstrap setting.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from api.models import UserListResponse, UserProfile, WhitelistAddRequest, WhitelistEntryResponse
from auth.credentials import CredentialStore
from auth.dependencies import require_admin
from auth.errors import NotFound
from auth.models import User
from auth.whitelist import AdminWhitelist

logger = logging.getLogger("propertydesk.api.admin")

router = APIRouter()


@router.get("/admin/whitelist", response_model=list[WhitelistEntryResponse])
async def list_whitelist(
    request: Request,
    current_user: User = Depends(require_admin),
) -> list[WhitelistEntryResponse]:
    whitelist: AdminWhitelist = request.app.state.whitelist
    return [WhitelistEntryResponse.from_entry(e) for e in whitelist.list_entries()]


@router.post("/admin/whitelist", response_model=WhitelistEntryResponse, status_code=201)
async def add_to_whitelist(
    request: Request,
    body: WhitelistAddRequest,
    current_user: User = Depends(require_admin),
) -> WhitelistEntryResponse:
    """Whitelist an email. 409 if already present.

    If an account already exists for the email its informational is_admin
    flag is set too. Access itself comes from the entry, not the flag.
    """
    whitelist: AdminWhitelist = request.app.state.whitelist
    credentials: CredentialStore = request.app.state.credentials

    entry = whitelist.add(body.email, body.full_name, added_by=current_user.email)
    credentials.users.set_admin_flag(body.email, True)
    logger.info("Whitelist entry added by %s", current_user.email)
    return WhitelistEntryResponse.from_entry(entry)


@router.delete("/admin/whitelist/{email}", status_code=204)
async def remove_from_whitelist(
    request: Request,
    email: str,
    current_user: User = Depends(require_admin),
) -> Response:
    """Revoke elevation for email. Takes effect on that user's next request."""
    whitelist: AdminWhitelist = request.app.state.whitelist
    credentials: CredentialStore = request.app.state.credentials

    if not whitelist.remove(email, keep_one=True):
        # The guarded delete already decided; this only picks the error.
        if whitelist.lookup(email) is None:
            raise NotFound("whitelist entry")
        raise HTTPException(
            status_code=400,
            detail={"code": "last_admin", "message": "Cannot remove the last whitelisted admin."},
        )
    credentials.users.set_admin_flag(email, False)
    logger.info("Whitelist entry removed by %s", current_user.email)
    return Response(status_code=204)


@router.get("/admin/users", response_model=UserListResponse)
async def list_users(
    request: Request,
    role: Optional[str] = Query(default=None, pattern="^(all|user|admin)$"),
    search: Optional[str] = Query(default=None, max_length=100),
    limit: int = Query(default=10, ge=1, le=100),
    page: int = Query(default=1, ge=1),
    current_user: User = Depends(require_admin),
) -> UserListResponse:
    """Page through users, newest first, optionally filtered by role and a search term."""
    credentials: CredentialStore = request.app.state.credentials
    users, total = credentials.users.search_users(role=role, search=search, limit=limit, page=page)
    return UserListResponse(
        users=[UserProfile.from_user(u) for u in users],
        total_pages=math.ceil(total / limit),
        current_page=page,
        total_users=total,
    )
