"""Process-wide session handling for the single-user client."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .accounts import CredentialStore, EmailTakenError
from .database import SESSION_KEY, Database
from .models import Account, Role

logger = logging.getLogger("leadcapture.sessions")


class SessionManager:
    """Track the one authenticated account and persist it across restarts."""

    def __init__(self, database: Database, accounts: CredentialStore) -> None:
        self._database = database
        self._accounts = accounts
        self._current: Optional[Account] = None
        self._loading = False
        self._lock = threading.Lock()

    @property
    def current(self) -> Optional[Account]:
        return self._current

    @property
    def is_authenticated(self) -> bool:
        return self._current is not None

    @property
    def loading(self) -> bool:
        return self._loading

    @contextmanager
    def _in_flight(self) -> Iterator[None]:
        with self._lock:
            self._loading = True
            try:
                yield
            finally:
                self._loading = False

    def login(self, email: str, password: str, role: Role | str) -> bool:
        with self._in_flight():
            account = self._accounts.find_by_credentials(email, password, role)
            if account is None:
                logger.info("Rejected login attempt for %s", email)
                return False
            self._establish(account)
            logger.info("Account %s logged in", account.id)
            return True

    def register(self, name: str, email: str, password: str, role: Role | str) -> bool:
        with self._in_flight():
            try:
                account = self._accounts.register(name, email, password, role)
            except EmailTakenError:
                logger.info("Registration refused; email already in use")
                return False
            except ValueError as exc:
                logger.info("Registration refused: %s", exc)
                return False
            self._establish(account)
            return True

    def logout(self) -> None:
        previous = self._current
        self._current = None
        self._database.delete_document(SESSION_KEY)
        if previous is not None:
            logger.info("Account %s logged out", previous.id)

    def restore(self) -> Optional[Account]:
        """Adopt the persisted session if its account still exists."""

        with self._in_flight():
            stored = self._database.read_document(SESSION_KEY)
            if stored is None:
                self._current = None
                return None

            account_id = stored.get("id")
            account = self._accounts.get(str(account_id)) if account_id else None
            if account is None:
                logger.warning("Persisted session for %r is stale; signing out", account_id)
                self._current = None
                self._database.delete_document(SESSION_KEY)
                return None

            self._current = account
            logger.debug("Restored session for account %s", account.id)
            return account

    def _establish(self, account: Account) -> None:
        self._current = account
        self._database.write_document(SESSION_KEY, account.to_session())


__all__ = ["SessionManager"]
