"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Services and routes never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Emails are normalized (strip + lowercase) before every write and lookup,
  so the UNIQUE constraint on users.email enforces case-insensitive
  uniqueness at the database level. A concurrent duplicate insert surfaces
  as IntegrityError and is reported as DuplicateEmail.

  Every method runs inside store_errors(): raw SQLAlchemy failures become
  StoreUnavailable at this boundary.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Column, String, Table, Text, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.db import metadata, now_iso, store_errors
from auth.errors import DuplicateEmail
from auth.models import User, normalize_email

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_users = Table(
    "users",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("password_hash", Text),  # NULL for passwordless (email sign-in) accounts
    Column("first_name", String(100), nullable=False, server_default=""),
    Column("last_name", String(100), nullable=False, server_default=""),
    Column("phone_number", String(40)),
    Column("role", String(20), nullable=False, server_default="user"),
    Column("is_admin", Boolean, nullable=False, server_default="0"),
    Column("email_verified", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),
)


class UserStore:
    """Repository for User records.

    Usage:
        engine = create_auth_engine("sqlite:///:memory:")
        store = UserStore(engine)
        user_id = store.create_user(User(email="alice@example.com", password_hash=hashed))
        user = store.get_by_email("Alice@Example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        with store_errors("create users table"):
            _users.create(engine, checkfirst=True)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> str:
        """Insert a new user and return its store-assigned ID.

        Raises DuplicateEmail if the normalized email is already registered.
        """
        email = normalize_email(user.email)
        user_id = uuid.uuid4().hex
        with store_errors("create user"):
            try:
                with self.engine.begin() as conn:
                    conn.execute(
                        _users.insert().values(
                            id=user_id,
                            email=email,
                            password_hash=user.password_hash,
                            first_name=user.first_name or "",
                            last_name=user.last_name or "",
                            phone_number=user.phone_number,
                            role=user.role,
                            is_admin=user.is_admin,
                            email_verified=user.email_verified,
                            created_at=now_iso(),
                        )
                    )
            except IntegrityError as exc:
                raise DuplicateEmail(email) from exc
        return user_id

    def set_admin_flag(self, email: str, is_admin: bool) -> bool:
        """Mirror whitelist membership onto the informational is_admin flag."""
        with store_errors("set admin flag"), self.engine.begin() as conn:
            result = conn.execute(
                _users.update().where(_users.c.email == normalize_email(email)).values(is_admin=is_admin)
            )
        return result.rowcount > 0

    def mark_email_verified(self, email: str) -> bool:
        """Flag the email as verified and stamp last_login. Returns False if no such user."""
        with store_errors("mark email verified"), self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.email == normalize_email(email))
                .values(email_verified=True, last_login=now_iso())
            )
        return result.rowcount > 0

    def update_last_login(self, user_id: str) -> None:
        with store_errors("update last login"), self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=now_iso()))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> User | None:
        """Case-insensitive lookup. Absence is not an error."""
        normalized = normalize_email(email)
        if not normalized:
            return None
        with store_errors("get user by email"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalized)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with store_errors("get user by id"), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def exists(self, email: str) -> bool:
        normalized = normalize_email(email)
        if not normalized:
            return False
        with store_errors("check user exists"), self.engine.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.email == normalized)
            ).scalar()
        return (count or 0) > 0

    def search_users(
        self,
        role: str | None = None,
        search: str | None = None,
        limit: int = 10,
        page: int = 1,
    ) -> tuple[list[User], int]:
        """Return one page of users, newest first, and the total number matching.

        role filters exactly; "all" or None means any role. search matches a
        case-insensitive substring of the full name, email or phone number.
        LIKE wildcards in search are escaped and match literally.
        """
        conditions = []
        if role and role != "all":
            conditions.append(_users.c.role == role)
        term = (search or "").strip().lower()
        if term:
            searchable = (
                _users.c.first_name + " " + _users.c.last_name,
                _users.c.email,
                func.coalesce(_users.c.phone_number, ""),
            )
            matches = (func.lower(col, type_=String).contains(term, autoescape=True) for col in searchable)
            conditions.append(or_(*matches))
        query = _users.select().where(*conditions)
        count_query = select(func.count()).select_from(_users).where(*conditions)
        page_query = (
            query.order_by(_users.c.created_at.desc(), _users.c.id.desc()).limit(limit).offset((page - 1) * limit)
        )
        with store_errors("search users"), self.engine.connect() as conn:
            total = conn.execute(count_query).scalar() or 0
            rows = conn.execute(page_query).fetchall()
        return [_row_to_user(r) for r in rows], total


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        phone_number=row.phone_number,
        role=row.role,
        is_admin=bool(row.is_admin),
        email_verified=bool(row.email_verified),
        created_at=row.created_at,
        last_login=row.last_login,
    )
