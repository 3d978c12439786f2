"""Lead capture and contact management service."""

from __future__ import annotations

from typing import Any

from .accounts import CredentialStore, EmailTakenError
from .contacts import ContactRecordStore, RecordNotFoundError, UnknownOwnerError
from .database import Database, resolve_database_path
from .sessions import SessionManager


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "ContactRecordStore",
    "CredentialStore",
    "Database",
    "EmailTakenError",
    "RecordNotFoundError",
    "SessionManager",
    "UnknownOwnerError",
    "create_app",
    "resolve_database_path",
]
