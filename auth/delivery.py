"""
auth/delivery.py -- Hand-off point for getting a verification code to its owner.

Outbound email is an external collaborator. Anything with a
deliver(email, code) method can be wired into app.state.code_delivery;
the default only logs that a code went out.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("propertydesk.auth.delivery")


class CodeDelivery(Protocol):
    def deliver(self, email: str, code: str) -> None: ...


class LoggingCodeDelivery:
    """Development backend. Never logs the code unless reveal_codes is set."""

    def __init__(self, reveal_codes: bool = False) -> None:
        self.reveal_codes = reveal_codes

    def deliver(self, email: str, code: str) -> None:
        if self.reveal_codes:
            logger.debug("Verification code for %s: %s", email, code)
        logger.info("Verification code dispatched to %s", email)
