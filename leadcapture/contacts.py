"""Storage for captured contact records."""
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional

from .accounts import CredentialStore
from .database import (
    CONTACTS_KEY,
    Database,
    current_timestamp,
    parse_datetime,
    serialize_datetime,
)
from .models import ContactRecord

logger = logging.getLogger("leadcapture.contacts")

# Keys owned by the store; they are never taken from caller-supplied fields.
_RESERVED_KEYS = {"id", "ownerId", "userId", "submittedAt"}


class RecordNotFoundError(LookupError):
    """Raised when updating a contact record id that does not exist."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Contact record '{record_id}' not found")
        self.record_id = record_id


class UnknownOwnerError(ValueError):
    """Raised when a record is created for an account that does not exist."""

    def __init__(self, owner_id: str) -> None:
        super().__init__(f"Account '{owner_id}' does not exist")
        self.owner_id = owner_id


def _clean_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(key): value for key, value in fields.items() if key not in _RESERVED_KEYS}


def _record_to_payload(record: ContactRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "ownerId": record.owner_id,
        "submittedAt": serialize_datetime(record.submitted_at),
        "fields": dict(record.fields),
    }


def _payload_to_record(payload: Dict[str, Any]) -> Optional[ContactRecord]:
    try:
        fields = payload.get("fields") or {}
        if not isinstance(fields, dict):
            raise TypeError("fields must be an object")
        return ContactRecord(
            id=str(payload["id"]),
            owner_id=str(payload["ownerId"]),
            submitted_at=parse_datetime(str(payload["submittedAt"])),
            fields=dict(fields),
        )
    except (KeyError, TypeError, ValueError):
        logger.warning("Skipping malformed contact record %r", payload.get("id"))
        return None


class ContactRecordStore:
    """Keep contact records newest-first in the ``contactSubmissions`` collection."""

    def __init__(self, database: Database, accounts: Optional[CredentialStore] = None) -> None:
        self._database = database
        self._accounts = accounts

    def create(
        self,
        owner_id: str,
        fields: Mapping[str, Any],
        *,
        record_id: Optional[str] = None,
    ) -> ContactRecord:
        if self._accounts is not None and self._accounts.get(owner_id) is None:
            raise UnknownOwnerError(owner_id)

        record = ContactRecord(
            id=record_id or uuid.uuid4().hex,
            owner_id=owner_id,
            submitted_at=current_timestamp(),
            fields=_clean_fields(fields),
        )

        def _prepend(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            if any(str(item.get("id")) == record.id for item in items):
                raise ValueError(f"Contact record '{record.id}' already exists")
            return [_record_to_payload(record), *items]

        self._database.update_collection(CONTACTS_KEY, _prepend)
        logger.info("Account %s submitted contact %s", owner_id, record.id)
        return record

    def update(self, record_id: str, fields: Mapping[str, Any]) -> ContactRecord:
        """Replace the descriptive fields of an existing record.

        The id, owner and original submission time are kept; the record
        stays at its position in the listing.
        """

        updated: Dict[str, ContactRecord] = {}

        def _replace(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
            for index, item in enumerate(items):
                if str(item.get("id")) != record_id:
                    continue
                existing = _payload_to_record(item)
                if existing is None:
                    break
                replacement = ContactRecord(
                    id=existing.id,
                    owner_id=existing.owner_id,
                    submitted_at=existing.submitted_at,
                    fields=_clean_fields(fields),
                )
                items[index] = _record_to_payload(replacement)
                updated["record"] = replacement
                return items
            raise RecordNotFoundError(record_id)

        self._database.update_collection(CONTACTS_KEY, _replace)
        logger.info("Updated contact %s", record_id)
        return updated["record"]

    def get(self, record_id: str) -> Optional[ContactRecord]:
        for record in self.list_all():
            if record.id == record_id:
                return record
        return None

    def list_all(self) -> List[ContactRecord]:
        records: List[ContactRecord] = []
        for payload in self._database.read_collection(CONTACTS_KEY):
            record = _payload_to_record(payload)
            if record is not None:
                records.append(record)
        return records

    def list_by_owner(self, owner_id: str) -> List[ContactRecord]:
        return [record for record in self.list_all() if record.owner_id == owner_id]


__all__ = ["ContactRecordStore", "RecordNotFoundError", "UnknownOwnerError"]
