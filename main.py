#!/usr/bin/env python3
"""
TaskGate -- administration commands for the authentication and access core.

Usage:
  python main.py seed-roles
  python main.py create-admin --username ada --email ada@example.com
  python main.py purge-tokens
  python main.py revoke-all --email ada@example.com

Environment variables:
  AUTH_DB_URL, PROJECTS_DB_URL        Database URLs (default: local SQLite files)
  ACCESS_TOKEN_SECRET, REFRESH_TOKEN_SECRET
                                      Required unless DEBUG=true
"""

import argparse
import getpass
import sys
from typing import Optional

from api.services import Services, build_services
from auth.errors import Failure
from auth.permissions import ADMINISTRATOR
from core.clock import utcnow
from core.config import get_settings


def _seed_roles(services: Services, args: argparse.Namespace) -> int:
    created = services.access.ensure_system_roles()
    print(f"  {created} system role(s) created.")
    return 0


def _create_admin(services: Services, args: argparse.Namespace) -> int:
    """Create a principal and grant it the Administrator role, whatever the registration order."""
    services.access.ensure_system_roles()
    password = args.password or getpass.getpass("Password: ")
    if len(password) < 8:
        print("  [!] Password must be at least 8 characters.")
        return 1

    result = services.accounts.register(username=args.username, email=args.email, password=password)
    if isinstance(result, Failure):
        print(f"  [!] Could not create account: {result.value}")
        return 1

    services.auth_store.update_principal(result.id, role=ADMINISTRATOR)
    role = services.auth_store.get_role_by_name(ADMINISTRATOR)
    assigned = services.access.assign_role(result.id, role.id)
    if isinstance(assigned, Failure) and assigned is not Failure.ALREADY_ASSIGNED:
        print(f"  [!] Could not assign Administrator role: {assigned.value}")
        return 1
    print(f"  Administrator '{args.username}' created (id={result.id}).")
    return 0


def _purge_tokens(services: Services, args: argparse.Namespace) -> int:
    purged = services.ledger.purge_expired(utcnow())
    print(f"  {purged} expired credential record(s) deleted.")
    return 0


def _revoke_all(services: Services, args: argparse.Namespace) -> int:
    principal = services.auth_store.get_by_email(args.email)
    if principal is None:
        print(f"  [!] No account with email '{args.email}'.")
        return 1
    revoked = services.sessions.logout_all(principal.id)
    print(f"  {revoked} credential(s) revoked for '{principal.username}'.")
    return 0


_COMMANDS = {
    "seed-roles": _seed_roles,
    "create-admin": _create_admin,
    "purge-tokens": _purge_tokens,
    "revoke-all": _revoke_all,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="taskgate",
        description="Administration commands for TaskGate.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py seed-roles
  python main.py create-admin --username ada --email ada@example.com
  python main.py purge-tokens
  python main.py revoke-all --email ada@example.com
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    sub.add_parser("seed-roles", help="Create any missing system role")

    admin = sub.add_parser("create-admin", help="Create an administrator account")
    admin.add_argument("--username", required=True, help="Login handle")
    admin.add_argument("--email", required=True, help="Email address used to sign in")
    admin.add_argument(
        "--password",
        default=None,
        help="Password (prompted for when omitted; avoid passing it on shared machines)",
    )

    sub.add_parser("purge-tokens", help="Delete credential records past their expiry")

    revoke = sub.add_parser("revoke-all", help="Revoke every live credential of one account")
    revoke.add_argument("--email", required=True, help="Email of the account to sign out everywhere")
    return parser


def main(argv: Optional[list[str]] = None, services: Optional[Services] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    owned = services is None
    if services is None:
        services = build_services(get_settings())
    try:
        return _COMMANDS[args.command](services, args)
    finally:
        if owned:
            services.close()


if __name__ == "__main__":
    sys.exit(main())
