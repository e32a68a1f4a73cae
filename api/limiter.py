"""
api/limiter.py -- The one slowapi Limiter shared by every route module.

Counters live in this instance's storage, so a second Limiter elsewhere
would count separately and never trip. Limits are read from settings at
request time through the callables below.

Decorate with @limiter.limit(...) BELOW the @router decorator: FastAPI must
register the rate-limited wrapper, not the bare function.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
    enabled=get_settings().rate_limit_enabled,
)


def login_limit() -> str:
    """Password login and account-existence checks."""
    return get_settings().login_rate_limit


def code_limit() -> str:
    """Issuing and redeeming verification codes."""
    return get_settings().code_rate_limit
