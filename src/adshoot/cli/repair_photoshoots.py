"""CLI command for reconciling photoshoots with their generation tasks.

Usage:
    python -m adshoot.cli.repair_photoshoots [OPTIONS]

Examples:
    # Repair one photoshoot
    python -m adshoot.cli.repair_photoshoots --photoshoot-id 3f0c...

    # Link legacy photoshoots to their tasks (one-time backfill)
    python -m adshoot.cli.repair_photoshoots --backfill --limit 1000

    # Verbose logging
    python -m adshoot.cli.repair_photoshoots --backfill -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from uuid import UUID

import structlog

from adshoot.core import timezone  # noqa: F401
from adshoot.core.config import Settings, configure_logging
from adshoot.core.database import setup_db_session
from adshoot.services.exceptions import PhotoshootNotFoundError
from adshoot.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Reconcile photoshoots with their generation tasks",
        epilog="Copies task status, image URL and error onto linked photoshoots",
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--photoshoot-id",
        type=UUID,
        help="Repair a single photoshoot",
    )
    mode.add_argument(
        "--backfill",
        action="store_true",
        help="Set task_id on legacy photoshoots and reconcile them",
    )

    parser.add_argument(
        "--limit",
        type=int,
        default=500,
        help="Maximum number of photoshoots examined by --backfill (default: 500)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def run(args: Namespace, uow_factory) -> int:
    """Execute the requested repair.

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    try:
        async with await uow_factory() as uow:
            if args.backfill:
                linked = await uow.synchronizer.backfill_links(uow.session, limit=args.limit)
                print(f"Photoshoots linked to tasks: {linked}")
                return 0

            outcome = await uow.synchronizer.repair_photoshoot(uow.session, args.photoshoot_id)

        if outcome.task_id is None:
            print(f"No task links to photoshoot {outcome.photoshoot_id}", file=sys.stderr)
            return 1

        print(f"Photoshoot: {outcome.photoshoot_id}")
        print(f"Task: {outcome.task_id}")
        print(f"Status: {outcome.status.value}")
        print(f"Changed: {'yes' if outcome.changed else 'no'}")
        return 0

    except PhotoshootNotFoundError as e:
        logger.error("cli.photoshoot_not_found", error=str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1


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

    logger.info(
        "cli.started",
        photoshoot_id=str(args.photoshoot_id) if args.photoshoot_id else None,
        backfill=args.backfill,
        limit=args.limit,
    )

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory, starting_credits=settings.starting_credits)

    try:
        return await run(args, uow_factory)
    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nRepair interrupted by user", file=sys.stderr)
        return 130
    except Exception as e:
        logger.error("cli.unexpected_error", error=str(e), error_type=type(e).__name__)
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
