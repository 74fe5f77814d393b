"""CLI command for granting credits to a user.

Usage:
    python -m adshoot.cli.grant_credits USER_ID AMOUNT [-v]

Top-ups normally arrive through billing; this is for support and testing.
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from uuid import UUID

import structlog

from adshoot.core import timezone  # noqa: F401
from adshoot.core.config import Settings, configure_logging
from adshoot.core.database import setup_db_session
from adshoot.services.credits import CreditLedger
from adshoot.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Grant generation credits to a user")
    parser.add_argument("user_id", type=UUID, help="User to credit")
    parser.add_argument("amount", type=int, help="Number of credits to add (positive)")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )
    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    ledger = CreditLedger(
        create_uow_factory(session_factory, starting_credits=settings.starting_credits)
    )

    try:
        balance = await ledger.grant(args.user_id, args.amount)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error("cli.unexpected_error", error=str(e), error_type=type(e).__name__)
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    print(f"Granted {args.amount} credits to {args.user_id}; balance is now {balance}")
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
