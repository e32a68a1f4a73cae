"""Unit tests for auth/credentials.py and the UserStore underneath it."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import text

from auth.credentials import CredentialStore
from auth.errors import DuplicateEmail, InvalidCredentials, NotFound, StoreUnavailable
from auth.passwords import PasswordHasher
from auth.models import User
from auth.store import UserStore


@pytest.fixture
def hasher():
    h = PasswordHasher(rounds=4, workers=2)
    yield h
    h.close()


@pytest.fixture
def users(engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def credentials(users: UserStore, hasher: PasswordHasher) -> CredentialStore:
    return CredentialStore(users, hasher)


def _create(credentials: CredentialStore, email: str, password: str | None = "Secret123", **profile):
    return asyncio.run(credentials.create(email, password, **profile))


class TestCreate:
    def test_create_assigns_id_and_hashes(self, credentials: CredentialStore) -> None:
        user = _create(credentials, "alice@example.com", first_name="Alice", last_name="Smith")
        assert user.id
        assert user.password_hash is not None
        assert user.password_hash != "Secret123"
        assert user.full_name == "Alice Smith"
        assert user.created_at is not None

    def test_email_is_normalized(self, credentials: CredentialStore) -> None:
        user = _create(credentials, "  Alice@Example.COM ")
        assert user.email == "alice@example.com"
        assert credentials.find_by_email("ALICE@example.com") is not None

    def test_duplicate_email_case_insensitive(self, credentials: CredentialStore) -> None:
        _create(credentials, "alice@example.com")
        with pytest.raises(DuplicateEmail):
            _create(credentials, "ALICE@example.com", password="Other1234")

    def test_duplicate_leaves_one_record(self, credentials: CredentialStore, users: UserStore) -> None:
        _create(credentials, "alice@example.com")
        with pytest.raises(DuplicateEmail):
            _create(credentials, "alice@example.com")
        assert users.search_users()[1] == 1

    def test_passwordless_account(self, credentials: CredentialStore) -> None:
        user = _create(credentials, "bob@example.com", password=None, first_name="Bob")
        assert user.password_hash is None
        assert credentials.verify_password(user, "") is False

    def test_blank_email_rejected(self, credentials: CredentialStore) -> None:
        with pytest.raises(ValueError):
            _create(credentials, "   ")


class TestLookup:
    def test_find_by_id(self, credentials: CredentialStore) -> None:
        user = _create(credentials, "alice@example.com")
        found = credentials.find_by_id(user.id)
        assert found is not None
        assert found.email == "alice@example.com"

    def test_absence_is_not_an_error(self, credentials: CredentialStore) -> None:
        assert credentials.find_by_email("ghost@example.com") is None
        assert credentials.find_by_id("0" * 32) is None
        assert credentials.exists("ghost@example.com") is False

    def test_exists(self, credentials: CredentialStore) -> None:
        _create(credentials, "alice@example.com")
        assert credentials.exists("Alice@Example.com") is True


class TestAuthenticate:
    def test_correct_password(self, credentials: CredentialStore) -> None:
        _create(credentials, "alice@example.com")
        user = asyncio.run(credentials.authenticate("ALICE@example.com", "Secret123"))
        assert user.email == "alice@example.com"
        assert credentials.find_by_id(user.id).last_login is not None

    def test_wrong_password_and_unknown_email_look_alike(self, credentials: CredentialStore) -> None:
        _create(credentials, "alice@example.com")
        with pytest.raises(InvalidCredentials) as wrong:
            asyncio.run(credentials.authenticate("alice@example.com", "Wrong1234"))
        with pytest.raises(InvalidCredentials) as unknown:
            asyncio.run(credentials.authenticate("ghost@example.com", "Secret123"))
        assert wrong.value.public_message == unknown.value.public_message
        assert wrong.value.status_code == unknown.value.status_code == 401

    def test_passwordless_account_cannot_password_login(self, credentials: CredentialStore) -> None:
        _create(credentials, "bob@example.com", password=None)
        with pytest.raises(InvalidCredentials):
            asyncio.run(credentials.authenticate("bob@example.com", ""))

    def test_verify_password_is_pure(self, credentials: CredentialStore) -> None:
        user = _create(credentials, "alice@example.com")
        assert CredentialStore.verify_password(user, "Secret123") is True
        assert CredentialStore.verify_password(user, "secret123") is False


class TestActivate:
    def test_activate_marks_verified(self, credentials: CredentialStore) -> None:
        _create(credentials, "bob@example.com", password=None)
        user = credentials.activate("BOB@example.com")
        assert user.email_verified is True
        assert user.last_login is not None

    def test_activate_unknown_user(self, credentials: CredentialStore) -> None:
        with pytest.raises(NotFound):
            credentials.activate("ghost@example.com")


class TestUserStore:
    def test_set_admin_flag(self, credentials: CredentialStore, users: UserStore) -> None:
        _create(credentials, "alice@example.com")
        assert users.set_admin_flag("Alice@example.com", True) is True
        assert users.get_by_email("alice@example.com").is_admin is True
        assert users.set_admin_flag("ghost@example.com", True) is False

    def test_storage_failure_becomes_store_unavailable(self, engine, users: UserStore) -> None:
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE users"))
        with pytest.raises(StoreUnavailable) as exc_info:
            users.get_by_email("alice@example.com")
        assert exc_info.value.retryable is True


class TestSearchUsers:
    @pytest.fixture
    def populated(self, users: UserStore) -> UserStore:
        users.create_user(
            User(email="alice@example.com", first_name="Alice", last_name="Smith", phone_number="555-0101")
        )
        users.create_user(User(email="bob@example.com", first_name="Bob", last_name="Jones", phone_number="555-0202"))
        users.create_user(User(email="carol@example.com", first_name="Carol", last_name="Smith", role="admin"))
        users.create_user(User(email="100%@example.com", first_name="Percy", last_name="Cent"))
        return users

    def test_no_filters_returns_everyone(self, populated: UserStore) -> None:
        found, total = populated.search_users()
        assert total == 4
        assert len(found) == 4

    @pytest.mark.parametrize("role, expected", [("admin", 1), ("user", 3), ("all", 4)])
    def test_role_filter(self, populated: UserStore, role: str, expected: int) -> None:
        found, total = populated.search_users(role=role)
        assert total == expected
        assert all(role == "all" or u.role == role for u in found)

    @pytest.mark.parametrize(
        "term, emails",
        [
            ("SMITH", {"alice@example.com", "carol@example.com"}),
            ("alice smith", {"alice@example.com"}),
            ("BOB@", {"bob@example.com"}),
            ("0202", {"bob@example.com"}),
            ("  carol  ", {"carol@example.com"}),
        ],
    )
    def test_search_matches_name_email_or_phone(self, populated: UserStore, term: str, emails: set[str]) -> None:
        found, total = populated.search_users(search=term)
        assert {u.email for u in found} == emails
        assert total == len(emails)

    def test_like_wildcards_match_literally(self, populated: UserStore) -> None:
        found, _ = populated.search_users(search="%")
        assert [u.email for u in found] == ["100%@example.com"]
        assert populated.search_users(search="_")[1] == 0

    def test_role_and_search_combine(self, populated: UserStore) -> None:
        found, total = populated.search_users(role="user", search="smith")
        assert [u.email for u in found] == ["alice@example.com"]
        assert total == 1

    def test_pages_are_disjoint_and_total_is_unpaged(self, populated: UserStore) -> None:
        first, total_first = populated.search_users(limit=3, page=1)
        second, total_second = populated.search_users(limit=3, page=2)
        assert total_first == total_second == 4
        assert len(first) == 3
        assert len(second) == 1
        assert {u.id for u in first}.isdisjoint(u.id for u in second)

    def test_page_past_the_end_is_empty(self, populated: UserStore) -> None:
        found, total = populated.search_users(limit=10, page=5)
        assert found == []
        assert total == 4
