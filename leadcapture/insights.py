"""Derived views over snapshots of accounts and contact records.

Everything here is a pure function: callers pass the records (and the
reference time where relevant) and get a new value back. Nothing is cached
and no store is touched, so the dashboards can compose these freely, e.g.
``search(filter_by_owner(records, owner), term)``.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, List, Sequence

from .models import Account, ContactRecord, Role

ALL_OWNERS = "all"
UNKNOWN_OWNER_NAME = "Unknown User"
SEARCH_FIELDS = ("name", "email", "company", "phone")

CompanyExtractor = Callable[[ContactRecord], Any]


def _company(record: ContactRecord) -> Any:
    return record.get("company")


def start_of_month(now: datetime) -> datetime:
    """First instant of the local calendar month containing ``now``."""

    local_now = now.astimezone()
    # Localise the naive midnight so the offset is the one in force on the 1st.
    return datetime(local_now.year, local_now.month, 1).astimezone()


def month_to_date_count(records: Iterable[ContactRecord], now: datetime) -> int:
    local_now = now.astimezone()
    start = start_of_month(local_now)
    return sum(1 for record in records if start <= record.submitted_at <= local_now)


def distinct_company_count(
    records: Iterable[ContactRecord],
    company: CompanyExtractor = _company,
) -> int:
    # Values are compared verbatim: "Acme" and "acme" are different companies.
    return len({company(record) for record in records})


def distinct_owner_count(records: Iterable[ContactRecord]) -> int:
    return len({record.owner_id for record in records})


def per_owner_count(records: Iterable[ContactRecord], owner_id: str) -> int:
    return sum(1 for record in records if record.owner_id == owner_id)


def filter_by_owner(records: Sequence[ContactRecord], owner_id: str) -> List[ContactRecord]:
    if owner_id == ALL_OWNERS:
        return list(records)
    return [record for record in records if record.owner_id == owner_id]


def search(records: Sequence[ContactRecord], term: str) -> List[ContactRecord]:
    """Case-insensitive substring match on name, email, company and phone."""

    if not term:
        return list(records)
    needle = term.lower()
    return [
        record
        for record in records
        if any(needle in str(record.get(name) or "").lower() for name in SEARCH_FIELDS)
    ]


def admin_view(records: Sequence[ContactRecord], owner_id: str = ALL_OWNERS, term: str = "") -> List[ContactRecord]:
    return search(filter_by_owner(records, owner_id), term)


def owner_name(accounts: Iterable[Account], owner_id: str) -> str:
    for account in accounts:
        if account.id == owner_id:
            return account.name
    return UNKNOWN_OWNER_NAME


@dataclass(frozen=True)
class DashboardStats:
    total_submissions: int
    month_to_date: int
    unique_companies: int
    total_users: int
    active_users: int
    average_per_user: int


def dashboard_stats(
    records: Sequence[ContactRecord],
    accounts: Sequence[Account],
    now: datetime,
) -> DashboardStats:
    """Totals shown on the admin dashboard.

    ``total_users`` counts only ``user``-role accounts, while
    ``active_users`` counts every distinct owner with at least one record.
    """

    total_users = sum(1 for account in accounts if account.role is Role.USER)
    total = len(records)
    # Halves round up.
    average = int(total / total_users + 0.5) if total_users > 0 else 0
    return DashboardStats(
        total_submissions=total,
        month_to_date=month_to_date_count(records, now),
        unique_companies=distinct_company_count(records),
        total_users=total_users,
        active_users=distinct_owner_count(records),
        average_per_user=average,
    )


__all__ = [
    "ALL_OWNERS",
    "DashboardStats",
    "SEARCH_FIELDS",
    "UNKNOWN_OWNER_NAME",
    "admin_view",
    "dashboard_stats",
    "distinct_company_count",
    "distinct_owner_count",
    "filter_by_owner",
    "month_to_date_count",
    "owner_name",
    "per_owner_count",
    "search",
    "start_of_month",
]
