"""
auth/whitelist.py -- The admin whitelist: emails allowed into the back office.

Presence of an entry is the only source of truth for elevation. Nothing
caches it and no token carries it, so remove() takes effect on the very next
admin-gated request.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Column, Integer, String, Table, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.db import metadata, now_iso, store_errors
from auth.errors import DuplicateEmail, StoreUnavailable
from auth.models import WHITELIST_ROLES, AdminWhitelistEntry, normalize_email

_whitelist = Table(
    "admin_whitelist",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("is_admin", Boolean, nullable=False, server_default="1"),
    Column("role", String(20), nullable=False, server_default="admin"),
    Column("full_name", String(200), nullable=False),
    Column("added_by", String(320), nullable=False),
    Column("created_at", String(32), nullable=False),
)


class AdminWhitelist:
    """Repository for AdminWhitelistEntry records, keyed by normalized email."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        with store_errors("create admin_whitelist table"):
            _whitelist.create(engine, checkfirst=True)

    def add(self, email: str, full_name: str, added_by: str, role: str = "admin") -> AdminWhitelistEntry:
        """Whitelist an email. Raises DuplicateEmail if it is already present."""
        normalized = normalize_email(email)
        if not normalized:
            raise ValueError("email is required")
        if role not in WHITELIST_ROLES:
            raise ValueError(f"Unknown whitelist role: {role!r}")
        with store_errors("add whitelist entry"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(
                        _whitelist.insert().values(
                            email=normalized,
                            is_admin=True,
                            role=role,
                            full_name=full_name.strip(),
                            added_by=normalize_email(added_by) or added_by,
                            created_at=now_iso(),
                        )
                    )
            except IntegrityError as exc:
                raise DuplicateEmail(normalized) from exc
        entry = self.lookup(normalized)
        if entry is None:
            # Committed but unreadable: treat like any other storage fault.
            raise StoreUnavailable("read back whitelist entry")
        return entry

    def lookup(self, email: str) -> AdminWhitelistEntry | None:
        normalized = normalize_email(email)
        if not normalized:
            return None
        with store_errors("lookup whitelist entry"), self.engine.connect() as conn:
            row = conn.execute(_whitelist.select().where(_whitelist.c.email == normalized)).fetchone()
        return _row_to_entry(row) if row is not None else None

    def remove(self, email: str, keep_one: bool = False) -> bool:
        """Delete the entry for email. Returns False if nothing was deleted.

        keep_one=True refuses to delete the last remaining entry. The count
        and the delete are one statement, so two admins removing each other
        at once cannot both succeed and leave the whitelist empty.
        """
        normalized = normalize_email(email)
        stmt = _whitelist.delete().where(_whitelist.c.email == normalized)
        if keep_one:
            # Aliased so the count is not correlated to the row being deleted.
            rest = _whitelist.alias("rest")
            others = select(func.count()).select_from(rest).where(rest.c.email != normalized).scalar_subquery()
            stmt = stmt.where(others > 0)
        with store_errors("remove whitelist entry"), self.engine.begin() as conn:
            result = conn.execute(stmt)
        return result.rowcount > 0

    def list_entries(self) -> list[AdminWhitelistEntry]:
        """Return all entries, newest first."""
        with store_errors("list whitelist"), self.engine.connect() as conn:
            rows = conn.execute(_whitelist.select().order_by(_whitelist.c.id.desc())).fetchall()
        return [_row_to_entry(r) for r in rows]

    def count(self) -> int:
        with store_errors("count whitelist"), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_whitelist)).scalar()
        return result or 0


def _row_to_entry(row) -> AdminWhitelistEntry:
    return AdminWhitelistEntry(
        id=row.id,
        email=row.email,
        is_admin=bool(row.is_admin),
        role=row.role,
        full_name=row.full_name,
        added_by=row.added_by,
        created_at=row.created_at,
    )
