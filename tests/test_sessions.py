from __future__ import annotations

from pathlib import Path

import pytest

from leadcapture.accounts import CredentialStore
from leadcapture.database import ACCOUNTS_KEY, SESSION_KEY, Database
from leadcapture.models import Role
from leadcapture.sessions import SessionManager


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "leadcapture.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def accounts(database: Database) -> CredentialStore:
    return CredentialStore(database)


def _manager(database: Database, accounts: CredentialStore) -> SessionManager:
    return SessionManager(database, accounts)


def test_register_signs_in_and_persists_projection(database: Database, accounts: CredentialStore) -> None:
    sessions = _manager(database, accounts)

    assert sessions.register("Demo User", "user@demo.com", "demo123", Role.USER) is True
    assert sessions.is_authenticated
    assert sessions.loading is False

    stored = database.read_document(SESSION_KEY)
    assert stored == {
        "id": sessions.current.id,
        "email": "user@demo.com",
        "name": "Demo User",
        "role": "user",
    }
    assert "password" not in stored


def test_register_with_taken_email_returns_false(database: Database, accounts: CredentialStore) -> None:
    sessions = _manager(database, accounts)
    assert sessions.register("First", "taken@example.com", "pw", Role.USER)
    sessions.logout()

    assert sessions.register("Second", "taken@example.com", "other", Role.USER) is False
    assert not sessions.is_authenticated
    assert len(database.read_collection(ACCOUNTS_KEY)) == 1


def test_login_returns_same_id_as_registration(database: Database, accounts: CredentialStore) -> None:
    registered = accounts.register("Demo User", "user@demo.com", "demo123", Role.USER)
    sessions = _manager(database, accounts)

    assert sessions.login("user@demo.com", "demo123", Role.USER) is True
    assert sessions.current.id == registered.id


@pytest.mark.parametrize(
    "password, role",
    [("wrong", Role.USER), ("demo123", Role.ADMIN)],
)
def test_login_failures_leave_session_unauthenticated(
    database: Database, accounts: CredentialStore, password: str, role: Role
) -> None:
    accounts.register("Demo User", "user@demo.com", "demo123", Role.USER)
    sessions = _manager(database, accounts)

    assert sessions.login("user@demo.com", password, role) is False
    assert sessions.current is None
    assert database.read_document(SESSION_KEY) is None


def test_session_survives_restart(database: Database, accounts: CredentialStore) -> None:
    first = _manager(database, accounts)
    first.register("Persisted", "persist@example.com", "pw", Role.ADMIN)

    second = _manager(database, accounts)
    restored = second.restore()

    assert restored is not None
    assert restored.id == first.current.id
    assert second.current.role is Role.ADMIN
    assert second.loading is False


def test_logout_then_restore_is_unauthenticated(database: Database, accounts: CredentialStore) -> None:
    sessions = _manager(database, accounts)
    sessions.register("Leaving", "leave@example.com", "pw", Role.USER)
    sessions.logout()

    assert sessions.current is None
    restarted = _manager(database, accounts)
    assert restarted.restore() is None
    assert not restarted.is_authenticated


def test_restore_drops_stale_session(database: Database, accounts: CredentialStore) -> None:
    database.write_document(SESSION_KEY, {"id": "ghost", "email": "ghost@example.com", "name": "Ghost", "role": "user"})

    sessions = _manager(database, accounts)
    assert sessions.restore() is None
    assert database.read_document(SESSION_KEY) is None


def test_restore_ignores_malformed_session(database: Database, accounts: CredentialStore) -> None:
    database.write_document(SESSION_KEY, {"unexpected": True})

    sessions = _manager(database, accounts)
    assert sessions.restore() is None
    assert not sessions.is_authenticated


@pytest.mark.parametrize(
    "name, email, password, role",
    [
        ("Name", "a@b.c", "pw", "superuser"),
        ("", "a@b.c", "pw", Role.USER),
        ("Name", "a@b.c", "", Role.USER),
    ],
)
def test_register_with_invalid_input_returns_false(
    database: Database, accounts: CredentialStore, name: str, email: str, password: str, role
) -> None:
    sessions = _manager(database, accounts)

    assert sessions.register(name, email, password, role) is False
    assert not sessions.is_authenticated
    assert sessions.loading is False
    assert database.read_collection(ACCOUNTS_KEY) == []
    assert database.read_document(SESSION_KEY) is None
