"""Credential store for registered accounts."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Optional

from passlib.context import CryptContext

from .database import (
    ACCOUNTS_KEY,
    Database,
    current_timestamp,
    parse_datetime,
    serialize_datetime,
)
from .models import Account, Role

logger = logging.getLogger("leadcapture.accounts")

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


class EmailTakenError(ValueError):
    """Raised when registering an email address that already has an account."""

    def __init__(self, email: str) -> None:
        super().__init__("An account with that email already exists")
        self.email = email


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        return False


def _generate_account_id() -> str:
    return uuid.uuid4().hex


def _record_to_account(record: Dict[str, Any]) -> Optional[Account]:
    try:
        return Account(
            id=str(record["id"]),
            name=str(record["name"]),
            email=str(record["email"]),
            role=Role.parse(record["role"]),
            created_at=parse_datetime(str(record["createdAt"])),
        )
    except (KeyError, TypeError, ValueError):
        logger.warning("Skipping malformed account record %r", record.get("id"))
        return None


class CredentialStore:
    """Create and look up accounts held in the ``registeredUsers`` collection.

    Email comparison is exact (case-sensitive). Passwords are kept only as
    salted hashes.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    def register(
        self,
        name: str,
        email: str,
        password: str,
        role: Role | str = Role.USER,
    ) -> Account:
        """Create a new account and return its public projection."""

        if not name or not name.strip():
            raise ValueError("Name must not be empty")
        if not email or not email.strip():
            raise ValueError("Email must not be empty")
        if not password:
            raise ValueError("Password must not be empty")
        parsed_role = Role.parse(role)

        account = Account(
            id=_generate_account_id(),
            name=name,
            email=email,
            role=parsed_role,
            created_at=current_timestamp(),
        )
        record = {
            "id": account.id,
            "name": account.name,
            "email": account.email,
            "passwordHash": hash_password(password),
            "role": account.role.value,
            "createdAt": serialize_datetime(account.created_at),
        }

        def _append(accounts: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            if any(existing.get("email") == email for existing in accounts):
                raise EmailTakenError(email)
            accounts.append(record)
            return accounts

        self._database.update_collection(ACCOUNTS_KEY, _append)
        logger.info("Registered %s account %s", account.role.value, account.id)
        return account

    def find_by_credentials(self, email: str, password: str, role: Role | str) -> Optional[Account]:
        """Return the account matching all three credentials, or ``None``."""

        try:
            parsed_role = Role.parse(role)
        except ValueError:
            return None

        for record in self._database.read_collection(ACCOUNTS_KEY):
            if record.get("email") != email or record.get("role") != parsed_role.value:
                continue
            if verify_password(password, str(record.get("passwordHash") or "")):
                return _record_to_account(record)
        return None

    def email_exists(self, email: str) -> bool:
        return any(record.get("email") == email for record in self._database.read_collection(ACCOUNTS_KEY))

    def get(self, account_id: str) -> Optional[Account]:
        for record in self._database.read_collection(ACCOUNTS_KEY):
            if str(record.get("id")) == account_id:
                return _record_to_account(record)
        return None

    def list_accounts(self, role: Role | str | None = None) -> List[Account]:
        wanted = Role.parse(role) if role is not None else None
        accounts: List[Account] = []
        for record in self._database.read_collection(ACCOUNTS_KEY):
            account = _record_to_account(record)
            if account is None:
                continue
            if wanted is not None and account.role is not wanted:
                continue
            accounts.append(account)
        return accounts


__all__ = ["CredentialStore", "EmailTakenError", "hash_password", "verify_password"]
