"""
auth/gate.py -- AuthorizationGate: may this authenticated principal act as admin?

Authentication answers "who" and lives as long as the token. Authorization
answers "may they" and must be revocable faster than that, so the gate looks
the whitelist up afresh on every call. It never reads an elevation flag from
the token or from User.is_admin.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

from auth.errors import Forbidden
from auth.whitelist import AdminWhitelist

logger = logging.getLogger("propertydesk.auth.gate")


class AuthorizationGate:
    def __init__(self, whitelist: AdminWhitelist) -> None:
        self.whitelist = whitelist

    def require_admin(self, principal_email: str) -> str:
        """Return the principal's whitelist role, or raise Forbidden."""
        entry = self.whitelist.lookup(principal_email)
        if entry is None or not entry.is_admin:
            logger.info("Admin access denied")
            raise Forbidden()
        return entry.role
