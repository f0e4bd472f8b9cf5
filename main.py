#!/usr/bin/env python3
"""
stormstarter -- Minimal web service scaffold: signed-token auth and
file-discovered routes.

Usage:
  python main.py serve
  python main.py serve --host 127.0.0.1 --port 9000 --reload
  python main.py routes
  python main.py routes --dir ./my_routes
  python main.py create-user ada
  python main.py create-user ada --password 'correct horse battery'
  python main.py token ada
  python main.py verify <token>
  python main.py snowflake -n 5
  python main.py snowflake --decompose 2894781203947520

Environment variables (all optional, see core/config.py):
  SERVER_ID     Snowflake node id, 0..1023. Must differ between processes
                sharing a database.
  DATABASE_URL  SQLAlchemy URL of the user database.
  ROUTES_DIR    Directory scanned for route modules.
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from api.main import build_context
from api.registry import RouteRegistry
from auth.credentials import create_user
from auth.tokens import find_by_token, issue_token
from core.config import get_settings
from core.errors import ExhaustionError
from core.snowflake import decompose


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "asgi:app",
        host=args.host or settings.http_host,
        port=args.port or settings.http_port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


def _cmd_routes(args: argparse.Namespace) -> int:
    settings = get_settings()
    context = build_context(settings)
    registry = RouteRegistry(context)
    table = registry.discover(args.dir or settings.routes_dir)
    for (method, path), compiled in sorted(table.items(), key=lambda item: (item[0][1], item[0][0])):
        guards = len(compiled.route.guards)
        print(f"  {method:<7} {path:<32} {compiled.source}" + (f"  [{guards} guard(s)]" if guards else ""))
    for issue in registry.issues:
        print(f"  [!] {issue}")
    print(f"\n  {len(table)} route(s), {len(registry.issues)} warning(s).")
    context.user_store.close()
    return 1 if args.strict and registry.issues else 0


def _cmd_create_user(args: argparse.Namespace) -> int:
    password = args.password
    if password is None and not args.no_password:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat password: "):
            print("  [!] Passwords do not match.")
            return 1
    context = build_context(get_settings())
    try:
        user = create_user(context.user_store, context.ids, args.username, password)
    except IntegrityError:
        print(f"  [!] Username '{args.username}' is already registered.")
        return 1
    finally:
        context.user_store.close()
    print(f"  Created {user.username} (snowflake {user.snowflake})")
    print(f"  Token: {issue_token(user)}")
    return 0


def _cmd_token(args: argparse.Namespace) -> int:
    context = build_context(get_settings())
    try:
        user = context.user_store.get_by_username(args.username)
    finally:
        context.user_store.close()
    if user is None:
        print(f"  [!] No user named '{args.username}'.")
        return 1
    print(issue_token(user))
    return 0


def _cmd_verify(args: argparse.Namespace) -> int:
    context = build_context(get_settings())
    try:
        user = find_by_token(args.token, context.user_store.get_by_snowflake)
    finally:
        context.user_store.close()
    if user is None:
        print("  [!] Token is not valid.")
        return 1
    print(f"  {user.username} (snowflake {user.snowflake})")
    return 0


def _cmd_snowflake(args: argparse.Namespace) -> int:
    settings = get_settings()
    if args.decompose:
        parts = decompose(args.decompose, settings.snowflake_epoch_ms)
        for key, value in parts.items():
            print(f"  {key:<13} {value}")
        return 0
    context = build_context(settings)
    context.user_store.close()
    try:
        for _ in range(args.count):
            print(context.ids.next_id())
    except ExhaustionError as exc:
        print(f"  [!] {exc}")
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="stormstarter",
        description="Signed-token auth and file-discovered routes.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = commands.add_parser("serve", help="Run the HTTP server under uvicorn")
    serve.add_argument("--host", default=None, help="Bind address (default: HTTP_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: HTTP_PORT)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes")
    serve.set_defaults(func=_cmd_serve)

    routes = commands.add_parser("routes", help="Run route discovery and print the dispatch table")
    routes.add_argument("--dir", default=None, metavar="PATH", help="Routes directory (default: ROUTES_DIR)")
    routes.add_argument("--strict", action="store_true", help="Exit 1 if discovery skipped anything")
    routes.set_defaults(func=_cmd_routes)

    create = commands.add_parser("create-user", help="Create a user and print a token for it")
    create.add_argument("username")
    create.add_argument("--password", default=None, help="Password (prompted when omitted)")
    create.add_argument("--no-password", action="store_true", help="Create a token-only user")
    create.set_defaults(func=_cmd_create_user)

    token = commands.add_parser("token", help="Issue a new token for an existing user")
    token.add_argument("username")
    token.set_defaults(func=_cmd_token)

    verify = commands.add_parser("verify", help="Check a token and print the user it belongs to")
    verify.add_argument("token")
    verify.set_defaults(func=_cmd_verify)

    snowflake = commands.add_parser("snowflake", help="Generate or decompose snowflake ids")
    snowflake.add_argument("-n", "--count", type=int, default=1, help="How many ids to generate")
    snowflake.add_argument("--decompose", default=None, metavar="ID", help="Split an id into its fields")
    snowflake.set_defaults(func=_cmd_snowflake)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 0
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
