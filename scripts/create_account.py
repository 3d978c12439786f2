import argparse
import getpass
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from leadcapture.accounts import CredentialStore, EmailTakenError
from leadcapture.database import Database, resolve_database_path
from leadcapture.models import Role


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create a lead capture account")
    parser.add_argument("name", help="Display name for the account")
    parser.add_argument("email", help="Unique email address for login (case-sensitive)")
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.USER.value,
        help="Account role (default: user)",
    )
    parser.add_argument(
        "--db",
        dest="db_path",
        default=None,
        help="Path to the SQLite database (defaults to LEADCAPTURE_DB_PATH or data/leadcapture.sqlite3)",
    )
    return parser.parse_args()


def prompt_for_password() -> str:
    for _ in range(3):
        password = getpass.getpass("Password: ")
        confirm = getpass.getpass("Confirm password: ")
        if password != confirm:
            print("Passwords do not match. Try again.", file=sys.stderr)
            continue
        if not password:
            print("Password must not be empty.", file=sys.stderr)
            continue
        return password
    raise SystemExit("Failed to set password after three attempts.")


def main() -> int:
    args = parse_args()
    password = prompt_for_password()

    db_env = args.db_path or os.getenv("LEADCAPTURE_DB_PATH")
    database = Database(resolve_database_path(db_env))
    database.initialize()

    try:
        account = CredentialStore(database).register(args.name.strip(), args.email.strip(), password, args.role)
    except (EmailTakenError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created {account.role.value} account {account.id}: {account.name} <{account.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
