#!/usr/bin/env python3
"""
Access Code Generator CLI

Generate time-limited access codes for Huggnote customers. Codes are signed
JWTs whose ``sub`` claim is the customer's user id; the API uses it to own
orders, checkouts and the song library.

Usage:
    python scripts/generate_access_code.py --user-id <user-id> --days 7
    python scripts/generate_access_code.py --generate-user-id --hours 1 -q

Environment:
    HUGGNOTE_ACCESS_TOKEN_SECRET must be set (generate with: openssl rand -hex 32)
"""
from __future__ import annotations

import argparse
import logging
import sys
import uuid as uuid_module

from huggnote.auth.tokens import AccessCodeError, generate_access_code, validate_access_code

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate time-limited access codes for Huggnote",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --generate-user-id --hours 1        # New user, 1 hour (quick test)
    %(prog)s --user-id USER --days 30            # Existing user, 1 month
        """,
    )
    parser.add_argument("--user-id", type=str, default=None, help="User id (JWT sub)")
    parser.add_argument(
        "--generate-user-id",
        action="store_true",
        help="Generate a new UUID for this token",
    )
    parser.add_argument("--hours", type=int, default=0, help="Token validity in hours")
    parser.add_argument("--days", type=int, default=0, help="Token validity in days")
    parser.add_argument("--minutes", type=int, default=0, help="Token validity in minutes")
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only output the token (for HUGGNOTE_API_TOKEN=$(...))",
    )
    args = parser.parse_args()

    if args.hours == 0 and args.days == 0 and args.minutes == 0:
        parser.error("At least one of --hours, --days, or --minutes must be specified")
    if not args.user_id and not args.generate_user_id:
        parser.error("Either --user-id or --generate-user-id is required")

    user_id = str(uuid_module.uuid4()) if args.generate_user_id else args.user_id

    try:
        token = generate_access_code(
            user_id=user_id,
            duration_hours=args.hours or None,
            duration_days=args.days or None,
            duration_minutes=args.minutes or None,
        )
    except AccessCodeError as e:
        logger.error("Error: %s", e)
        sys.exit(1)

    if args.quiet:
        print(token)
        return

    claims = validate_access_code(token)
    logger.info("\n" + "=" * 60)
    logger.info("HUGGNOTE ACCESS CODE")
    logger.info("=" * 60)
    logger.info("User ID:  %s", user_id)
    logger.info("Expires:  %s (unix)", claims["exp"])
    logger.info("\nAccess Code:")
    logger.info("-" * 60)
    logger.info(token)
    logger.info("-" * 60)
    logger.info("\nCLI use: export HUGGNOTE_API_TOKEN=<access code>")
    logger.info("=" * 60 + "\n")


if __name__ == "__main__":
    main()
