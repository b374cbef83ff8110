#!/usr/bin/env python3
"""
Issue a bearer token for local testing of the secure-select / insert /
update endpoints, or print a fresh signing key for .env.

    python scripts/issue_token.py --user-id 42 --role staff
    python scripts/issue_token.py --new-secret
"""

import argparse
import secrets
from datetime import timedelta

from secure_access.api.auth import generate_token
from secure_access.config import SECRET_KEY, TOKEN_EXPIRY_HOURS
from secure_access.models import AccessContext
from secure_access.permissions import build_default_policy


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Issue a signed access token.")
    parser.add_argument("--new-secret", action="store_true",
                        help="print a random JWT_SECRET_KEY line and exit")
    parser.add_argument("--user-id")
    parser.add_argument("--role")
    parser.add_argument("--email", default=None)
    parser.add_argument("--hours", type=int, default=TOKEN_EXPIRY_HOURS)
    args = parser.parse_args(argv)
    if not args.new_secret and (args.user_id is None or args.role is None):
        parser.error("--user-id and --role are required unless --new-secret is given")
    return args


def main(argv=None):
    args = parse_args(argv)
    if args.new_secret:
        print(f"JWT_SECRET_KEY={secrets.token_hex(32)}")
        return

    policy = build_default_policy()
    if args.role not in policy.roles:
        print(f"[WARN] Role '{args.role}' has no policy entry; every table will be denied.")

    ctx = AccessContext(user_id=args.user_id, role=args.role, email=args.email)
    token = generate_token(ctx, SECRET_KEY, expires_in=timedelta(hours=args.hours))

    print("=" * 70)
    print(f"Token for user {ctx.user_id} (role={ctx.role}), valid {args.hours}h")
    print("=" * 70)
    print(token)
    print()
    print("Use it as:")
    print(f"  Authorization: Bearer {token}")


if __name__ == "__main__":
    main()
