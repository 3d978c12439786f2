from __future__ import annotations

from pathlib import Path

import pytest

from leadcapture.accounts import CredentialStore, EmailTakenError
from leadcapture.database import ACCOUNTS_KEY, Database
from leadcapture.models import Role


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "leadcapture.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def store(database: Database) -> CredentialStore:
    return CredentialStore(database)


def test_register_returns_public_projection(store: CredentialStore) -> None:
    account = store.register("Demo User", "user@demo.com", "demo123", "user")

    assert account.id
    assert account.name == "Demo User"
    assert account.email == "user@demo.com"
    assert account.role is Role.USER
    assert account.created_at.tzinfo is not None
    assert not hasattr(account, "password")


def test_duplicate_email_is_rejected(store: CredentialStore, database: Database) -> None:
    store.register("First", "dup@example.com", "secret-one", Role.USER)

    with pytest.raises(EmailTakenError):
        store.register("Second", "dup@example.com", "secret-two", Role.ADMIN)

    assert len(database.read_collection(ACCOUNTS_KEY)) == 1


def test_email_comparison_is_case_sensitive(store: CredentialStore) -> None:
    store.register("Lower", "person@example.com", "pw", Role.USER)
    upper = store.register("Upper", "Person@example.com", "pw", Role.USER)

    assert upper.email == "Person@example.com"
    assert store.email_exists("person@example.com")
    assert store.email_exists("Person@example.com")
    assert not store.email_exists("PERSON@example.com")


def test_find_by_credentials_requires_all_three(store: CredentialStore) -> None:
    account = store.register("Demo User", "user@demo.com", "demo123", Role.USER)

    found = store.find_by_credentials("user@demo.com", "demo123", Role.USER)
    assert found is not None
    assert found.id == account.id

    assert store.find_by_credentials("user@demo.com", "wrong", Role.USER) is None
    assert store.find_by_credentials("user@demo.com", "demo123", Role.ADMIN) is None
    assert store.find_by_credentials("USER@demo.com", "demo123", Role.USER) is None
    assert store.find_by_credentials("user@demo.com", "demo123", "superuser") is None


def test_password_is_not_persisted_in_plain_text(store: CredentialStore, database: Database) -> None:
    store.register("Hashed", "hashed@example.com", "plain-text-secret", Role.USER)

    (record,) = database.read_collection(ACCOUNTS_KEY)
    assert "password" not in record
    assert "plain-text-secret" not in record["passwordHash"]


def test_register_validates_input(store: CredentialStore) -> None:
    with pytest.raises(ValueError):
        store.register("  ", "blank@example.com", "pw", Role.USER)
    with pytest.raises(ValueError):
        store.register("Name", "", "pw", Role.USER)
    with pytest.raises(ValueError):
        store.register("Name", "nopw@example.com", "", Role.USER)
    with pytest.raises(ValueError):
        store.register("Name", "role@example.com", "pw", "owner")


def test_get_and_list_accounts(store: CredentialStore) -> None:
    user = store.register("User", "u@example.com", "pw", Role.USER)
    admin = store.register("Admin", "a@example.com", "pw", Role.ADMIN)

    assert store.get(user.id) == user
    assert store.get("missing") is None
    assert [account.id for account in store.list_accounts()] == [user.id, admin.id]
    assert [account.id for account in store.list_accounts(Role.USER)] == [user.id]
    assert [account.id for account in store.list_accounts("admin")] == [admin.id]


def test_malformed_account_records_are_skipped(store: CredentialStore, database: Database) -> None:
    good = store.register("Good", "good@example.com", "pw", Role.USER)
    database.update_collection(ACCOUNTS_KEY, lambda items: [*items, {"id": "broken", "email": "x"}])

    assert [account.id for account in store.list_accounts()] == [good.id]
