#!/usr/bin/env python3
"""
PropertyDesk operator CLI -- manage the admin whitelist and accounts without the API.

Usage:
  python main.py whitelist list
  python main.py whitelist add dave@example.com "Dave Admin"
  python main.py whitelist remove dave@example.com
  python main.py create-user alice@example.com --first-name Alice --last-name Smith
  python main.py purge-codes

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the auth database (default: auth/propertydesk_auth.db)
  SECRET_KEY    Required unless DEBUG=true (read by core.config on startup)

Every command runs against the same stores the API uses, so the whitelist
invariants (unique normalized email, immediate revocation) hold here too.
"""

import argparse
import asyncio
import getpass
import sys
from typing import Optional

from auth.codes import VerificationCodeStore
from auth.credentials import CredentialStore
from auth.db import create_auth_engine
from auth.errors import AuthError
from auth.passwords import MIN_PASSWORD_LENGTH, PasswordHasher
from auth.store import UserStore
from auth.whitelist import AdminWhitelist
from core.config import get_settings


def _cmd_whitelist(args: argparse.Namespace, engine) -> int:
    whitelist = AdminWhitelist(engine)
    users = UserStore(engine)

    if args.action == "list":
        entries = whitelist.list_entries()
        if not entries:
            print("  Whitelist is empty.")
        for e in entries:
            print(f"  {e.email:<40} {e.full_name:<30} added by {e.added_by} at {e.created_at}")
        return 0

    if args.action == "add":
        entry = whitelist.add(args.email, args.full_name or args.email, added_by="cli")
        users.set_admin_flag(entry.email, True)
        print(f"  Whitelisted {entry.email}.")
        return 0

    # remove
    if not whitelist.remove(args.email):
        print(f"  [!] {args.email} is not whitelisted.")
        return 1
    users.set_admin_flag(args.email, False)
    print(f"  Removed {args.email}. Admin access is revoked on their next request.")
    return 0


def _cmd_create_user(args: argparse.Namespace, engine) -> int:
    settings = get_settings()
    password: Optional[str] = args.password
    if password is None and not args.passwordless:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Confirm password: "):
            print("  [!] Passwords do not match.")
            return 1
    if not args.passwordless and len(password) < MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {MIN_PASSWORD_LENGTH} characters.")
        return 1

    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, workers=1)
    try:
        credentials = CredentialStore(UserStore(engine), hasher)
        user = asyncio.run(
            credentials.create(
                args.email,
                None if args.passwordless else password,
                first_name=args.first_name,
                last_name=args.last_name,
            )
        )
    finally:
        hasher.close()
    print(f"  Created user {user.email} (id {user.id}).")
    return 0


def _cmd_purge_codes(args: argparse.Namespace, engine) -> int:
    settings = get_settings()
    codes = VerificationCodeStore(engine, ttl=settings.verification_code_ttl_seconds)
    removed = codes.purge_expired()
    print(f"  Purged {removed} expired verification code(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="propertydesk",
        description="Manage PropertyDesk admin access and accounts.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL for this invocation",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    wl = sub.add_parser("whitelist", help="List, add or remove admin whitelist entries")
    wl_sub = wl.add_subparsers(dest="action", required=True)
    wl_sub.add_parser("list", help="Show all whitelisted emails")
    wl_add = wl_sub.add_parser("add", help="Whitelist an email")
    wl_add.add_argument("email")
    wl_add.add_argument("full_name", nargs="?", default="")
    wl_rm = wl_sub.add_parser("remove", help="Revoke an email's admin access")
    wl_rm.add_argument("email")
    wl.set_defaults(func=_cmd_whitelist)

    cu = sub.add_parser("create-user", help="Register an account")
    cu.add_argument("email")
    cu.add_argument("--first-name", default="")
    cu.add_argument("--last-name", default="")
    cu.add_argument("--password", default=None, help="Read from a prompt when omitted")
    cu.add_argument("--passwordless", action="store_true", help="Account signs in by email code only")
    cu.set_defaults(func=_cmd_create_user)

    pc = sub.add_parser("purge-codes", help="Delete expired verification codes")
    pc.set_defaults(func=_cmd_purge_codes)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    engine = create_auth_engine(args.database_url or get_settings().database_url)
    try:
        return args.func(args, engine)
    except AuthError as exc:
        print(f"  [!] {exc.public_message} ({exc.code})")
        return 1
    except ValueError as exc:
        print(f"  [!] {exc}")
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
