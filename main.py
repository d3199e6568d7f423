#!/usr/bin/env python3
"""
Expense Manager account service -- operator CLI.

Every registration must be approved by an Admin, so a fresh install needs one
administrator created out of band. That account is enabled and verified but
still marked first-login: its first sign-in hands back a reset token instead
of a session, forcing the bootstrap password to be replaced.

Usage:
  python main.py create-admin --email admin@example.com --external-id admin \
      --name Admin --surname User
  python main.py list-pending

Environment variables (see core/config.py):
  DATABASE_URL   Account store URL (default: SQLite file beside auth/)
  SECRET_KEY     Session signing key; or DEBUG=true for a throwaway key
"""

import argparse
import getpass
import sys

from auth.models import AccountDraft, Role
from auth.oauth import GoogleIdentityValidator
from auth.service import AccountServices, build_services
from auth.store import AccountStore
from core.config import get_settings
from core.errors import AccountError
from notify.email import build_notifier


def _services() -> AccountServices:
    settings = get_settings()
    return build_services(
        store=AccountStore(settings.database_url),
        notifier=build_notifier(settings),
        validator=GoogleIdentityValidator(),
        settings=settings,
    )


def _create_admin(args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Initial password: ")
    if not args.password and password != getpass.getpass("Repeat password: "):
        print("  [!] Passwords do not match.")
        return 1

    services = _services()
    try:
        account = services.bootstrap_admin(
            AccountDraft(
                external_id=args.external_id,
                name=args.name,
                surname=args.surname,
                email=args.email,
                role=Role.ADMIN,
                gpn=args.gpn,
            ),
            password,
        )
    except AccountError as exc:
        print(f"  [!] {exc.message}")
        if exc.detail:
            print(f"      {exc.detail}")
        return 1
    finally:
        services.store.close()

    print(f"Admin account {account.id} created for {account.email}.")
    print("The first sign-in will require choosing a new password.")
    return 0


def _list_pending(args: argparse.Namespace) -> int:
    services = _services()
    try:
        pending = services.list_pending_verifications()
    finally:
        services.store.close()

    if not pending:
        print("No accounts awaiting verification.")
        return 0

    print(f"{'ID':>5}  {'EMAIL':<40} {'NAME':<30} {'EXPIRES (UTC)'}")
    print("─" * 100)
    for account in pending:
        expires = account.verification_token.expires_at.strftime("%Y-%m-%d %H:%M")
        print(f"{account.id:>5}  {account.email:<40} {account.display_name:<30} {expires}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="expensegate",
        description="Account service administration.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin --email admin@example.com --external-id admin --name Admin --surname User
  DATABASE_URL=sqlite:///accounts.db python main.py list-pending
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    create = sub.add_parser("create-admin", help="Create an enabled Admin account (first login forces a reset)")
    create.add_argument("--email", required=True)
    create.add_argument("--external-id", required=True, help="Organisation user id (max 50 chars)")
    create.add_argument("--name", required=True)
    create.add_argument("--surname", required=True)
    create.add_argument("--gpn", default="", help="Employee number (optional)")
    create.add_argument(
        "--password",
        default=None,
        help="Initial password. Prompted for when omitted; prefer the prompt so it stays out of shell history.",
    )
    create.set_defaults(handler=_create_admin)

    pending = sub.add_parser("list-pending", help="List accounts awaiting admin verification")
    pending.set_defaults(handler=_list_pending)

    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 0
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
