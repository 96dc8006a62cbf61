#!/usr/bin/env python3
"""
PhotoAuth -- command-line entry point.

Usage:
  python main.py serve [--host 127.0.0.1] [--port 8000] [--reload]
  python main.py create-admin USERNAME --password PASSWORD --second-factor CODE

create-admin is idempotent: running it for an existing admin reports the
account and changes nothing. Configuration (DATABASE_URL, SECRET_KEY, ...) is
read from the environment or .env, exactly as the server reads it.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.delivery import LogCodeSender
from auth.errors import AuthServiceError
from auth.store import UserStore
from core.clock import SystemClock
from core.config import get_settings


def _create_admin(args: argparse.Namespace) -> int:
    # Imported here so `serve` does not build the app twice.
    from api.main import build_auth_service

    password: Optional[str] = args.password or getpass.getpass("Admin password: ")
    if not password or len(password) < 8:
        print("  [!] Password must be at least 8 characters.", file=sys.stderr)
        return 1
    second_factor = args.second_factor.strip()
    if not second_factor:
        print("  [!] Second-factor code must not be empty.", file=sys.stderr)
        return 1

    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        service = build_auth_service(settings, store, SystemClock(), LogCodeSender())
        user = service.ensure_admin(args.username.strip(), password, second_factor)
    except AuthServiceError as exc:
        print(f"  [!] {exc.message}", file=sys.stderr)
        return 1
    finally:
        store.close()

    print(f"  Admin '{user.username}' ready (uid={user.uid}).")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="photoauth", description="PhotoAuth authentication service")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(func=_serve)

    admin = sub.add_parser("create-admin", help="Create the admin account if it does not exist")
    admin.add_argument("username")
    admin.add_argument("--password", help="Prompted for when omitted")
    admin.add_argument("--second-factor", required=True, help="Static code required after password login")
    admin.set_defaults(func=_create_admin)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
