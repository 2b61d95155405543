#!/usr/bin/env python3
"""
DocDesk -- account administration from the command line.

Usage:
  python main.py create-admin admin@example.com --first-name Asha --last-name Patil
  python main.py force-logout admin@example.com
  python main.py force-logout 9876543210
  python main.py list-admins

The admin email must be listed in ADMIN_ALLOW_LIST. The password is read from
the DOCDESK_ADMIN_PASSWORD environment variable if set, otherwise prompted for.

Environment variables:
  DATABASE_URL      SQLAlchemy URL of the credential database (default: auth/docdesk_auth.db)
  ADMIN_ALLOW_LIST  Comma-separated admin emails
  SECRET_KEY        Required unless DEBUG=true
"""

import argparse
import getpass
import os
import re
import sys
from typing import Optional

from auth.errors import AuthError
from auth.identity import MOBILE_PATTERN
from auth.models import ROLE_ADMIN, Credential
from auth.notify import MailjetNotifier
from auth.service import AccountService, build_account_service
from auth.store import CredentialStore
from core.config import get_settings


def _build_service() -> AccountService:
    settings = get_settings()
    store = CredentialStore(settings.database_url) if settings.database_url else CredentialStore()
    notifier = MailjetNotifier(
        settings.mailjet_api_key_public,
        settings.mailjet_api_key_private,
        settings.sender_email,
        sender_name=settings.sender_name,
    )
    return build_account_service(settings, store, notifier)


def _read_password() -> str:
    password = os.environ.get("DOCDESK_ADMIN_PASSWORD")
    if password:
        return password
    password = getpass.getpass("Admin password: ")
    if password != getpass.getpass("Repeat password: "):
        raise ValueError("Passwords do not match.")
    return password


def _create_admin(accounts: AccountService, args: argparse.Namespace) -> int:
    try:
        password = _read_password()
    except ValueError as e:
        print(f"  [!] {e}")
        return 1
    if len(password) < 6:
        print("  [!] Password must be at least 6 characters.")
        return 1
    if args.mobile and not re.match(MOBILE_PATTERN, args.mobile):
        print("  [!] Mobile number must be 10 digits.")
        return 1
    profile = Credential(
        email=args.email,
        role=ROLE_ADMIN,
        first_name=args.first_name,
        last_name=args.last_name,
        mobile_number=args.mobile,
    )
    created = accounts.create_admin(profile, password)
    print(f"  Admin created: {created.email} (id={created.id})")
    return 0


def _force_logout(accounts: AccountService, args: argparse.Namespace) -> int:
    target = accounts.store.find_by_identity(args.identity)
    if target is None:
        print(f"  [!] No account found for '{args.identity}'.")
        return 1
    refreshed = accounts.force_logout(target.id)
    print(f"  {refreshed.email} logged out from all devices (session version {refreshed.session_version}).")
    return 0


def _list_admins(accounts: AccountService, args: argparse.Namespace) -> int:
    admins = accounts.list_accounts(ROLE_ADMIN)
    if not admins:
        print("  No admin accounts.")
        return 0
    for admin in admins:
        allowed = "" if accounts.guard.is_allowed_admin(admin.email) else "  [not in ADMIN_ALLOW_LIST]"
        state = "active" if admin.is_active else "disabled"
        print(f"  {admin.id:>4}  {admin.email:<40} {state}{allowed}")
    return 0


def main(argv: Optional[list[str]] = None, accounts: Optional[AccountService] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="docdesk",
        description="DocDesk account administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin admin@example.com --first-name Asha --last-name Patil
  DOCDESK_ADMIN_PASSWORD=... python main.py create-admin admin@example.com
  python main.py force-logout user@example.com
  python main.py list-admins
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-admin", help="Create an admin account (email must be allow-listed)")
    create.add_argument("email", help="Admin email address")
    create.add_argument("--first-name", default=None, help="First name")
    create.add_argument("--last-name", default=None, help="Last name")
    create.add_argument("--mobile", default=None, metavar="NUMBER", help="10-digit mobile number")
    create.set_defaults(handler=_create_admin)

    logout = sub.add_parser("force-logout", help="Revoke every session of an account")
    logout.add_argument("identity", help="Email address or mobile number of the account")
    logout.set_defaults(handler=_force_logout)

    listing = sub.add_parser("list-admins", help="List admin accounts")
    listing.set_defaults(handler=_list_admins)

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    owns_store = accounts is None
    if owns_store:
        accounts = _build_service()
    try:
        return args.handler(accounts, args)
    except AuthError as e:
        print(f"  [!] {e.message}")
        return 1
    finally:
        if owns_store:
            accounts.store.close()


if __name__ == "__main__":
    sys.exit(main())
