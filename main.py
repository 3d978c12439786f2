"""Command-line interface for the lead capture service."""

from __future__ import annotations
import argparse
import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from getpass import getpass
from typing import Dict, List, Sequence

from leadcapture.accounts import CredentialStore
from leadcapture.config import Settings, load_settings
from leadcapture.contacts import ContactRecordStore, RecordNotFoundError, UnknownOwnerError
from leadcapture.database import Database
from leadcapture.insights import (
    ALL_OWNERS,
    admin_view,
    dashboard_stats,
    distinct_company_count,
    month_to_date_count,
    owner_name,
    per_owner_count,
    search,
)
from leadcapture.models import ContactRecord, Role
from leadcapture.sessions import SessionManager

logger = logging.getLogger("leadcapture.main")

_ROLE_CHOICES = [role.value for role in Role]


@dataclass
class _Context:
    database: Database
    accounts: CredentialStore
    sessions: SessionManager
    contacts: ContactRecordStore


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Lead capture utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the lead capture database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP service")
    serve_parser.add_argument("--host", default=None, help="Bind address (default: from settings)")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: from settings)")

    register_parser = subparsers.add_parser("register", help="Create an account and sign in")
    register_parser.add_argument("name", help="Display name")
    register_parser.add_argument("email", help="Login email address")
    register_parser.add_argument("--role", choices=_ROLE_CHOICES, default=Role.USER.value)

    login_parser = subparsers.add_parser("login", help="Sign in to an existing account")
    login_parser.add_argument("email", help="Login email address")
    login_parser.add_argument("--role", choices=_ROLE_CHOICES, default=Role.USER.value)

    subparsers.add_parser("logout", help="Sign out of the current session")
    subparsers.add_parser("whoami", help="Show the signed-in account")

    submit_parser = subparsers.add_parser("submit", help="Record a new contact")
    submit_parser.add_argument(
        "--field",
        dest="fields",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Contact field, e.g. --field name='Jane Doe' (repeatable)",
    )

    edit_parser = subparsers.add_parser("edit", help="Change fields of an existing contact")
    edit_parser.add_argument("record_id", help="Contact record id")
    edit_parser.add_argument("--field", dest="fields", action="append", default=[], metavar="KEY=VALUE")

    list_parser = subparsers.add_parser("list", help="List contacts, newest first")
    list_parser.add_argument("--all", action="store_true", help="List every account's contacts (admin only)")
    list_parser.add_argument("--owner", default=ALL_OWNERS, help="Restrict --all to one owner id")
    list_parser.add_argument("--search", default="", help="Case-insensitive search term")

    subparsers.add_parser("stats", help="Show submission statistics")
    subparsers.add_parser("users", help="List registered users (admin only)")

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = set(subparsers.choices)

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _parse_fields(pairs: Sequence[str]) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        fields[key.strip()] = value
    return fields


def _initialise(settings: Settings) -> _Context:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    accounts = CredentialStore(database)
    sessions = SessionManager(database, accounts)
    sessions.restore()
    return _Context(
        database=database,
        accounts=accounts,
        sessions=sessions,
        contacts=ContactRecordStore(database, accounts),
    )


def _serve(settings: Settings, *, host: str | None, port: int | None) -> None:
    from leadcapture.api import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting lead capture API on http://%s:%s", bind_host, bind_port)
    app = create_app(settings=settings)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=settings.log_level.lower())


def _prompt_for_password(*, confirm: bool) -> str | None:
    for _ in range(3):
        password = getpass("Password: ")
        if not password:
            print("Password must not be empty. Please try again.")
            continue
        if confirm and getpass("Confirm password: ") != password:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _print_records(records: List[ContactRecord], *, names: Dict[str, str] | None = None) -> None:
    if not records:
        print("No contacts found.")
        return
    print(f"{'ID':<32}  {'Name':<22}  {'Company':<22}  {'Email':<28}  Submitted")
    print("-" * 120)
    for record in records:
        submitted = record.submitted_at.astimezone().strftime("%Y-%m-%d %H:%M")
        line = (
            f"{record.id:<32}  {str(record.get('name')):<22}  {str(record.get('company')):<22}  "
            f"{str(record.get('email')):<28}  {submitted}"
        )
        if names is not None:
            line += f"  ({names.get(record.owner_id, 'Unknown User')})"
        print(line)


def _command_register(ctx: _Context, args: argparse.Namespace) -> int:
    password = _prompt_for_password(confirm=True)
    if password is None:
        print("Aborted registration.")
        return 1
    if not ctx.sessions.register(args.name, args.email, password, args.role):
        if ctx.accounts.email_exists(args.email):
            print("An account with that email already exists.")
        else:
            print("Failed to register: name and email must not be empty.")
        return 1
    account = ctx.sessions.current
    print(f"Registered and signed in as {account.name} <{account.email}> ({account.role.value}).")
    return 0


def _command_login(ctx: _Context, args: argparse.Namespace) -> int:
    password = _prompt_for_password(confirm=False)
    if password is None or not ctx.sessions.login(args.email, password, args.role):
        print("Invalid email, password or role.")
        return 1
    account = ctx.sessions.current
    print(f"Signed in as {account.name} <{account.email}>.")
    return 0


def _command_submit(ctx: _Context, args: argparse.Namespace) -> int:
    account = ctx.sessions.current
    fields = _parse_fields(args.fields)
    try:
        record = ctx.contacts.create(account.id, fields)
    except UnknownOwnerError as exc:
        print(f"Failed to save contact: {exc}")
        return 1
    print(f"Saved contact {record.id}.")
    return 0


def _command_edit(ctx: _Context, args: argparse.Namespace) -> int:
    account = ctx.sessions.current
    existing = ctx.contacts.get(args.record_id)
    if existing is None or (existing.owner_id != account.id and not account.is_admin):
        print(f"Contact {args.record_id} not found.")
        return 1
    fields = {**existing.fields, **_parse_fields(args.fields)}
    try:
        ctx.contacts.update(existing.id, fields)
    except RecordNotFoundError as exc:
        print(str(exc))
        return 1
    print(f"Updated contact {existing.id}.")
    return 0


def _command_list(ctx: _Context, args: argparse.Namespace) -> int:
    account = ctx.sessions.current
    if args.all:
        if not account.is_admin:
            print("Listing every contact requires an administrator account.")
            return 1
        known = ctx.accounts.list_accounts()
        records = admin_view(ctx.contacts.list_all(), args.owner, args.search)
        _print_records(records, names={record.owner_id: owner_name(known, record.owner_id) for record in records})
        return 0
    _print_records(search(ctx.contacts.list_by_owner(account.id), args.search))
    return 0


def _command_stats(ctx: _Context, _args: argparse.Namespace) -> int:
    account = ctx.sessions.current
    now = datetime.now(timezone.utc)
    if account.is_admin:
        stats = dashboard_stats(ctx.contacts.list_all(), ctx.accounts.list_accounts(), now)
        print(f"Total submissions:   {stats.total_submissions}")
        print(f"This month:          {stats.month_to_date}")
        print(f"Unique companies:    {stats.unique_companies}")
        print(f"Registered users:    {stats.total_users}")
        print(f"Active users:        {stats.active_users}")
        print(f"Average per user:    {stats.average_per_user}")
        return 0
    records = ctx.contacts.list_by_owner(account.id)
    print(f"Total submissions:   {len(records)}")
    print(f"This month:          {month_to_date_count(records, now)}")
    print(f"Unique companies:    {distinct_company_count(records)}")
    return 0


def _command_users(ctx: _Context, _args: argparse.Namespace) -> int:
    if not ctx.sessions.current.is_admin:
        print("Listing users requires an administrator account.")
        return 1
    users = ctx.accounts.list_accounts(Role.USER)
    if not users:
        print("No users are currently registered.")
        return 0
    records = ctx.contacts.list_all()
    print(f"{len(users)} user(s) found:")
    print(f"{'ID':<32}  {'Name':<24}  {'Email':<32}  {'Contacts':>8}  Joined")
    print("-" * 120)
    for user in users:
        joined = user.created_at.astimezone().strftime("%Y-%m-%d")
        print(f"{user.id:<32}  {user.name:<24}  {user.email:<32}  {per_owner_count(records, user.id):>8}  {joined}")
    return 0


_SIGNED_IN_COMMANDS = {
    "submit": _command_submit,
    "edit": _command_edit,
    "list": _command_list,
    "stats": _command_stats,
    "users": _command_users,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = load_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s [%(levelname)s] %(message)s")

    if args.command == "serve":
        _serve(settings, host=args.host, port=args.port)
        return 0

    ctx = _initialise(settings)

    if args.command == "init-db":
        print("Database initialisation complete.")
        return 0
    if args.command == "register":
        return _command_register(ctx, args)
    if args.command == "login":
        return _command_login(ctx, args)
    if args.command == "logout":
        ctx.sessions.logout()
        print("Signed out.")
        return 0
    if args.command == "whoami":
        account = ctx.sessions.current
        if account is None:
            print("Not signed in.")
            return 1
        print(f"{account.name} <{account.email}> ({account.role.value}) id={account.id}")
        return 0

    handler = _SIGNED_IN_COMMANDS[args.command]
    if not ctx.sessions.is_authenticated:
        print("Not signed in. Run `login` or `register` first.")
        return 1
    try:
        return handler(ctx, args)
    except ValueError as exc:
        print(f"Error: {exc}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
