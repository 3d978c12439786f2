"""Domain models for accounts and captured contact records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class Role(str, Enum):
    """Roles an account may register and log in with."""

    USER = "user"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: "Role | str") -> "Role":
        if isinstance(value, Role):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown role '{value}'") from exc


@dataclass(frozen=True)
class Account:
    """Public projection of a registered account; never carries the password."""

    id: str
    name: str
    email: str
    role: Role
    created_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_session(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role.value,
        }


@dataclass(frozen=True)
class ContactRecord:
    """A lead submission owned by exactly one account."""

    id: str
    owner_id: str
    submitted_at: datetime
    fields: Dict[str, Any] = field(default_factory=dict)

    def get(self, name: str, default: Any = "") -> Any:
        return self.fields.get(name, default)


__all__ = ["Account", "ContactRecord", "Role"]
