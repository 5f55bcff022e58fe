#!/usr/bin/env python3
"""
authcore -- operator CLI.

Usage:
  python main.py token --user-id 1 --username alice --permission "user:* post:read"
  python main.py token --user-id 1 --username root --role ADMIN --json
  python main.py verify <access-token>
  python main.py seed-permissions read:user create:post
  python main.py seed-permissions --file permissions.txt

Environment variables:
  SECRET_KEY    Signing key (>= 32 chars). Required unless DEBUG=true; a
                generated dev key makes minted tokens useless to a running server.
  DATABASE_URL  Target database for seed-permissions.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from auth.models import UserRole
from auth.tokens import TokenMaker, TokenVerificationFailed
from core.config import get_settings
from core.database import create_db_engine
from identity.permissions import index_permissions, missing_permissions
from identity.store import PermissionStore


def _load_file(path: str) -> list[str]:
    """Read permission ids from a file -- one per line, # comments and blank lines ignored."""
    file_path = Path(path).resolve()
    if not file_path.is_file():
        print(f"  [!] '{path}' is not a readable file.")
        return []
    try:
        lines = file_path.read_text().splitlines()
    except OSError as e:
        print(f"  [!] Could not read file '{path}': {e}")
        return []
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


def cmd_token(args: argparse.Namespace) -> int:
    settings = get_settings()
    maker = TokenMaker(settings.secret_key)
    duration = args.duration_ms if args.duration_ms is not None else settings.access_token_duration_ms
    token, payload = maker.create_token(
        user_id=args.user_id,
        username=args.username,
        permission=args.permission,
        role=args.role,
        duration=duration,
        instance_id=settings.instance_id,
        role_id=args.role,
    )
    if args.json:
        print(
            json.dumps(
                {
                    "access_token": token,
                    "jti": payload.id,
                    "expires_at": payload.expires_at.isoformat(),
                },
                indent=2,
            )
        )
    else:
        print(token)
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    maker = TokenMaker(get_settings().secret_key)
    try:
        payload = maker.verify_token(args.token)
    except TokenVerificationFailed as e:
        print(f"  [!] {e}")
        return 1
    print(
        json.dumps(
            {
                "jti": payload.id,
                "user_id": payload.user_id,
                "username": payload.username,
                "permission": payload.permission,
                "role": payload.role,
                "instance_id": payload.instance_id,
                "issued_at": payload.issued_at.isoformat(),
                "expires_at": payload.expires_at.isoformat(),
            },
            indent=2,
        )
    )
    return 0


def cmd_seed_permissions(args: argparse.Namespace) -> int:
    requested: list[str] = list(args.ids)
    if args.file:
        requested.extend(_load_file(args.file))
    requested = list(dict.fromkeys(requested))
    if not requested:
        print("  [!] No permission ids given.")
        return 1

    store = PermissionStore(create_db_engine(get_settings().database_url))
    found = store.get_by_ids(requested)
    if not found.ok:
        print(f"  [!] Lookup failed: {found.error.message}")
        return 1

    missing = missing_permissions(requested, index_permissions(found.data))
    if not missing:
        print(f"  All {len(requested)} permission(s) already exist.")
        return 0

    created = store.create_many(missing)
    if not created.ok:
        print(f"  [!] Insert failed: {created.error.message} ({created.error.code})")
        return 1
    for permission in created.data:
        print(f"  + {permission.id}")
    print(f"  Created {len(created.data)}, {len(requested) - len(created.data)} already present.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="authcore",
        description="Mint and inspect access tokens, seed the permission catalog.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py token --user-id 1 --username alice --permission "permission:assign"
  python main.py verify eyJhbGciOiJIUzI1NiIs...
  python main.py seed-permissions read:user create:post
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    token = sub.add_parser("token", help="Print a signed access token")
    token.add_argument("--user-id", required=True, help="Subject (user id) of the token")
    token.add_argument("--username", required=True)
    token.add_argument(
        "--permission",
        default="",
        help='Scope string, space- or comma-separated (e.g. "user:* post:read")',
    )
    token.add_argument(
        "--role",
        choices=[r.value for r in UserRole],
        default=UserRole.USER.value,
        help="Role claim (default: USER)",
    )
    token.add_argument(
        "--duration-ms",
        type=int,
        default=None,
        metavar="MS",
        help="Lifetime in milliseconds (default: ACCESS_TOKEN_DURATION_MS)",
    )
    token.add_argument("--json", action="store_true", help="Print token, jti and expiry as JSON")
    token.set_defaults(func=cmd_token)

    verify = sub.add_parser("verify", help="Verify an access token and print its claims")
    verify.add_argument("token")
    verify.set_defaults(func=cmd_verify)

    seed = sub.add_parser("seed-permissions", help="Create missing permission catalog rows")
    seed.add_argument("ids", nargs="*", metavar="PERMISSION-ID", help='Ids like "read:user"')
    seed.add_argument(
        "--file",
        metavar="PATH",
        help="Path to a text file with one permission id per line (# comments supported)",
    )
    seed.set_defaults(func=cmd_seed_permissions)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
