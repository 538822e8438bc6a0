"""CLI commands for driving the generation queue outside the web process.

Usage:
    python -m colorpage.cli [OPTIONS] COMMAND

Examples:
    # Run one polling tick (promote retries, process up to the batch cap)
    python -m colorpage.cli process-queue

    # Process a single job by its external id
    python -m colorpage.cli process-job 3f1c...

    # Run the polling loop until interrupted
    python -m colorpage.cli run-worker --interval 10

    # Verbose logging
    python -m colorpage.cli -v process-queue
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from uuid import UUID

import structlog

from colorpage.core import timezone  # noqa: F401
from colorpage.core.config import Settings, configure_logging
from colorpage.core.database import setup_db_session
from colorpage.uow import create_uow_factory
from colorpage.workers.generation_worker import run_generation_worker
from colorpage.workers.setup import build_worker

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Coloring-page generation queue tools")

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("process-queue", help="Run one polling tick and exit")

    process_job = subparsers.add_parser("process-job", help="Process one job by external id")
    process_job.add_argument("job_id", type=UUID, help="External generation job id")

    run_worker = subparsers.add_parser("run-worker", help="Run the polling loop")
    run_worker.add_argument(
        "--interval",
        type=float,
        help="Seconds between polling ticks (default: POLL_INTERVAL_SECONDS)",
    )

    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 130 (interrupted)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    logger.info("cli.started", command=args.command)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)
    components = build_worker(settings, uow_factory)

    try:
        if args.command == "process-queue":
            processed = await components.worker.process_queue()
            print(f"Processed {processed} job(s)")
            return 0

        if args.command == "process-job":
            completed = await components.worker.process_single_job(args.job_id)
            if completed:
                print(f"Job {args.job_id} completed")
                return 0
            print(f"Job {args.job_id} did not complete", file=sys.stderr)
            return 1

        await run_generation_worker(components.worker, args.interval)
        return 0

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nInterrupted by user", file=sys.stderr)
        return 130

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        await components.aclose()


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
