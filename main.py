#!/usr/bin/env python3
"""
AuthCore admin CLI -- account and session maintenance without the HTTP API.

Usage:
  python main.py create-user --email admin@example.com --name "Ada Admin" --role admin
  python main.py list-users
  python main.py set-active --email ann@example.com --inactive
  python main.py set-active --email ann@example.com --active
  python main.py revoke-sessions --email ann@example.com
  python main.py purge-sessions

Reads the same settings as the API (environment variables or .env):
  DATABASE_URL           SQLAlchemy URL of the credential/session database.
  ACCESS_TOKEN_SECRET    Required unless DEBUG=true.
  REFRESH_TOKEN_SECRET   Required unless DEBUG=true.
  BCRYPT_ROUNDS          bcrypt work factor for create-user (default 12).

create-user prompts for the password when --password is not given, so it
does not end up in shell history.
"""

from __future__ import annotations

import argparse
import getpass
import logging
from collections.abc import Sequence
from datetime import timedelta
from typing import Optional

from auth.errors import AuthError, StoreError
from auth.models import ROLES
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import SessionStore, UserStore
from auth.tokens import TokenCodec
from core.clock import SystemClock
from core.config import Settings, get_settings


def build_service(settings: Settings) -> AuthService:
    """Wire stores, hasher and codec from settings, the same way api/main.py does."""
    clock = SystemClock()
    codec = TokenCodec(
        settings.access_token_secret,
        settings.refresh_token_secret,
        clock=clock,
        access_ttl=timedelta(seconds=settings.access_token_expire_seconds),
        refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
    )
    return AuthService(
        UserStore(settings.database_url, clock=clock),
        SessionStore(settings.database_url, clock=clock),
        PasswordHasher(rounds=settings.bcrypt_rounds),
        codec,
    )


def _close(service: AuthService) -> None:
    service.users.close()
    service.sessions.close()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_create_user(service: AuthService, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass("Password: ")
    user = service.create_user(args.email, password, args.name, role=args.role)
    print(f"  Created user {user.id} ({user.email}, role={user.role}).")
    return 0


def cmd_list_users(service: AuthService, args: argparse.Namespace) -> int:
    users = service.users.list_users()
    if not users:
        print("  No users.")
        return 0
    for u in users:
        status = "active" if u.is_active else "disabled"
        last_login = u.last_login.isoformat() if u.last_login else "never"
        sessions = service.sessions.count_for_user(u.id)
        print(f"  {u.id:>5}  {u.email:<40} {u.role:<9} {status:<8} sessions={sessions} last_login={last_login}")
    return 0


def cmd_set_active(service: AuthService, args: argparse.Namespace) -> int:
    """Enable or disable an account. Disabling also revokes its refresh tokens.

    Access tokens already issued stay valid until they expire; they cannot
    be revoked early.
    """
    user = service.users.get_by_email(args.email)
    if user is None:
        print(f"  [!] No user with email '{args.email}'.")
        return 1
    service.users.update_user(user.id, is_active=args.active)
    if args.active:
        print(f"  Enabled user {user.id} ({user.email}).")
        return 0
    removed = service.logout_all(user.id)
    print(f"  Disabled user {user.id} ({user.email}); revoked {removed} session(s).")
    return 0


def cmd_revoke_sessions(service: AuthService, args: argparse.Namespace) -> int:
    user = service.users.get_by_email(args.email)
    if user is None:
        print(f"  [!] No user with email '{args.email}'.")
        return 1
    removed = service.logout_all(user.id)
    print(f"  Revoked {removed} session(s) for {user.email}.")
    return 0


def cmd_purge_sessions(service: AuthService, args: argparse.Namespace) -> int:
    removed = service.sessions.purge_expired(service.clock.now())
    print(f"  Purged {removed} expired session(s).")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authcore",
        description="Account and session maintenance for AuthCore.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --email admin@example.com --name "Ada Admin" --role admin
  python main.py set-active --email ann@example.com --inactive
  python main.py revoke-sessions --email ann@example.com
  python main.py purge-sessions
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("create-user", help="Create an account")
    p.add_argument("--email", required=True)
    p.add_argument("--name", required=True, help="Display name (2-50 characters)")
    p.add_argument("--role", choices=ROLES, default=None, help="Default: operator")
    p.add_argument("--password", default=None, help="Omit to be prompted")
    p.set_defaults(func=cmd_create_user)

    p = sub.add_parser("list-users", help="List accounts with their open session counts")
    p.set_defaults(func=cmd_list_users)

    p = sub.add_parser("set-active", help="Enable or disable an account")
    p.add_argument("--email", required=True)
    group = p.add_mutually_exclusive_group(required=True)
    group.add_argument("--active", dest="active", action="store_true")
    group.add_argument("--inactive", dest="active", action="store_false")
    p.set_defaults(func=cmd_set_active)

    p = sub.add_parser("revoke-sessions", help="Revoke every refresh token of an account")
    p.add_argument("--email", required=True)
    p.set_defaults(func=cmd_revoke_sessions)

    p = sub.add_parser("purge-sessions", help="Delete expired refresh-token records")
    p.set_defaults(func=cmd_purge_sessions)

    return parser


def main(argv: Optional[Sequence[str]] = None, service: Optional[AuthService] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 2

    logging.basicConfig(level=logging.WARNING, format="%(levelname)-5s %(name)s %(message)s")

    owned = service is None
    if service is None:
        service = build_service(get_settings())
    try:
        return args.func(service, args)
    except AuthError as exc:
        print(f"  [!] {exc.message} ({exc.code})")
        return 1
    except StoreError as exc:
        print(f"  [!] Store error: {exc}")
        return 1
    finally:
        if owned:
            _close(service)


if __name__ == "__main__":
    raise SystemExit(main())
