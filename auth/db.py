"""
auth/db.py -- Engine factory and storage error translation shared by the auth stores.

One engine is created at startup and passed to every store explicitly. There
is no module-level connection: tests build their own engine on an in-memory
or temp-file database and hand it to the stores under test.

store_errors() is the boundary every store method runs inside. Raw
SQLAlchemy exceptions never leave a store -- they become StoreUnavailable,
the one retryable kind in auth.errors.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import AuthError, StoreUnavailable

logger = logging.getLogger("propertydesk.auth.db")

metadata = MetaData()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_auth_engine(db_url: str) -> Engine:
    """Create the engine shared by UserStore, AdminWhitelist and VerificationCodeStore."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate storage-engine failures into StoreUnavailable.

    AuthError subclasses raised inside the block (e.g. DuplicateEmail) pass
    through untouched.
    """
    try:
        yield
    except AuthError:
        raise
    except SQLAlchemyError as exc:
        logger.warning("Store failure during %s: %s", operation, exc.__class__.__name__)
        raise StoreUnavailable(operation) from exc


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
