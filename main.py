#!/usr/bin/env python3
"""
MemberAuth -- administration commands.

Signup can never produce an admin (admins are approved by other admins), so
the first admin account is created here.

Usage:
  python main.py create-admin --email admin@example.org --name "Site Admin"
  python main.py create-admin --email admin@example.org --name "Site Admin" --password s3cret

Without --password the password is read interactively. Reads the same
environment / .env settings as the API (DATABASE_URL, SECRET_KEY, ...).
"""

import argparse
import asyncio
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from auth.authenticator import Authenticator
from auth.hasher import CredentialHasher, KdfParams
from auth.models import Account
from auth.roles import RoleDirectory
from auth.store import AccountStore
from core.config import get_settings
from notify.sink import LoggingNotificationSink


def create_admin(store: AccountStore, email: str, name: str, password: str) -> int:
    """Create a fully verified admin account and return its id."""
    settings = get_settings()
    store.ensure_roles(settings.default_roles)
    role = RoleDirectory(store, settings.admin_role_name).resolve(settings.admin_role_name)
    account_id = store.create_account(
        Account(name=name, email=email, role_id=role.id, email_verified=True, verified=True)
    )
    authenticator = Authenticator(
        store,
        CredentialHasher(KdfParams.from_settings(settings)),
        LoggingNotificationSink(),
        settings,
    )
    asyncio.run(authenticator.set_password(account_id, password))
    return account_id


def main() -> int:
    parser = argparse.ArgumentParser(description="MemberAuth administration")
    sub = parser.add_subparsers(dest="command", required=True)

    admin = sub.add_parser("create-admin", help="create a verified admin account")
    admin.add_argument("--email", required=True)
    admin.add_argument("--name", required=True)
    admin.add_argument("--password", help="omit to be prompted")

    args = parser.parse_args()

    if args.command == "create-admin":
        password = args.password or getpass.getpass("Password: ")
        if not password:
            print("  [!] Password must not be empty.")
            return 1
        store = AccountStore(get_settings().database_url)
        try:
            account_id = create_admin(store, args.email, args.name, password)
        except IntegrityError:
            print(f"  [!] An account with email {args.email} already exists.")
            return 1
        finally:
            store.close()
        print(f"  Created admin account {account_id} ({args.email})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
