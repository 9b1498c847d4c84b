#!/usr/bin/env python3
"""
sessiongate -- operator CLI for the user directory and refresh-token table.

Usage:
  python main.py create-user a@x.com "Ana Silva" --profile INVESTOR
  python main.py deactivate-user a@x.com
  python main.py activate-user a@x.com
  python main.py purge-tokens

Environment variables:
  SECRET_KEY     Required (same policy as the API; min 32 characters).
  DATABASE_URL   SQLAlchemy URL. Defaults to sessiongate.db beside the code.
  BCRYPT_ROUNDS  Cost factor for new password hashes (default 10).

create-user prompts for the password twice; it is never accepted as an
argument so it does not end up in shell history.
"""

import argparse
import getpass
import logging
import sys

from sqlalchemy.exc import IntegrityError

from auth.errors import StorageError, ValidationError
from auth.models import Profile, User
from auth.passwords import PasswordHasher
from auth.session import check_password, normalize_email
from auth.store import RefreshTokenStore, UserStore, build_engine
from core.config import get_settings


def _prompt_password() -> str:
    first = getpass.getpass("  Password: ")
    try:
        check_password(first)
    except ValidationError as exc:
        print(f"  [!] {exc.message}")
        sys.exit(1)
    if getpass.getpass("  Repeat password: ") != first:
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return first


def _create_user(users: UserStore, args: argparse.Namespace, rounds: int) -> int:
    # Same shape rules as SessionService.login.
    try:
        email = normalize_email(args.email)
    except ValidationError as exc:
        print(f"  [!] {exc.message}")
        return 1
    password = _prompt_password()
    user = User(
        email=email,
        name=args.name.strip(),
        password_hash=PasswordHasher(rounds=rounds).hash(password),
        profile=args.profile,
    )
    try:
        user_id = users.create_user(user)
    except IntegrityError:
        print(f"  [!] A user with email {user.email!r} already exists.")
        return 1
    print(f"  Created {user.profile} user {user.email} ({user_id}).")
    return 0


def _set_active(users: UserStore, email: str, active: bool) -> int:
    user = users.get_by_email(email)
    if user is None:
        print(f"  [!] No user with email {email!r}.")
        return 1
    users.update_user(user.id, is_active=active)
    print(f"  {email} is now {'active' if active else 'inactive'}.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="sessiongate",
        description="Manage sessiongate users and refresh tokens.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create a user (password is prompted)")
    create.add_argument("email")
    create.add_argument("name")
    create.add_argument(
        "--profile",
        choices=[p.value for p in Profile],
        default=Profile.INVESTOR.value,
        help="Role tag copied into access tokens (default: INVESTOR)",
    )

    deactivate = sub.add_parser("deactivate-user", help="Block login and refresh for a user")
    deactivate.add_argument("email")

    activate = sub.add_parser("activate-user", help="Re-enable a deactivated user")
    activate.add_argument("email")

    sub.add_parser("purge-tokens", help="Delete expired refresh tokens")

    args = parser.parse_args(argv)

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)-5s %(name)s %(message)s")
    engine = build_engine(settings.database_url)
    try:
        users = UserStore(engine)
        if args.command == "create-user":
            return _create_user(users, args, settings.bcrypt_rounds)
        if args.command == "deactivate-user":
            return _set_active(users, args.email, False)
        if args.command == "activate-user":
            return _set_active(users, args.email, True)
        tokens = RefreshTokenStore(engine, expire_seconds=settings.refresh_token_expire_seconds)
        removed = tokens.purge_expired()
        print(f"  Removed {removed} expired refresh token(s).")
        return 0
    except StorageError:
        print("  [!] Database error; see log output for details.")
        return 1
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
