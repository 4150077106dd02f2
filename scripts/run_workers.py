#!/usr/bin/env python3
"""Entrypoint for running the notification delivery worker.

Usage:
    # Single cycle (sweep, reclaim, deliver due notifications once)
    python scripts/run_workers.py --once

    # Continuous loop (Ctrl+C or SIGTERM to stop)
    python scripts/run_workers.py --loop

    # Loop with custom interval and parallelism
    python scripts/run_workers.py --loop --interval 2 --concurrency 20

    # Create missing tables first (local SQLite runs)
    python scripts/run_workers.py --once --create-tables

Environment variables:
    DATABASE_URL: Queue database (default: sqlite:///./stream_notifier.db)
    TELEGRAM_BOT_TOKEN / DISCORD_BOT_TOKEN: Destination credentials
    NOTIFICATION_RETRY_ENABLED: Run deliveries at all (default: true)
    NOTIFICATION_RETRY_BATCH_SIZE: Tasks claimed per cycle (default: 50)
    NOTIFICATION_RETRY_WORKER_CONCURRENCY: Parallel deliveries (default: 10)
    NOTIFICATION_RETRY_POLL_INTERVAL_SECONDS: Seconds between cycles (default: 5)
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from stream_notifier.config import get_settings
from stream_notifier.db.session import init_db
from stream_notifier.workers import (
    run_worker_once,
    run_worker_loop,
    configure_worker_logging,
)


def main() -> int:
    """Main entrypoint for worker runner."""
    parser = argparse.ArgumentParser(
        description="Deliver queued stream notifications to Telegram and Discord",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Mode selection
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--once",
        action="store_true",
        help="Run one delivery cycle and exit",
    )
    mode.add_argument(
        "--loop",
        action="store_true",
        help="Run delivery cycles continuously",
    )

    # Configuration
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between cycles (loop mode only)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum iterations before stopping (loop mode only)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Tasks to claim per cycle",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Maximum deliveries in flight",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing queue tables before starting",
    )

    # Logging
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Reduce logging to warnings only",
    )

    args = parser.parse_args()

    # Configure logging
    if args.verbose:
        configure_worker_logging(logging.DEBUG)
    elif args.quiet:
        configure_worker_logging(logging.WARNING)
    else:
        configure_worker_logging(logging.INFO)

    logger = logging.getLogger(__name__)

    try:
        get_settings().validate()
        if args.create_tables:
            init_db()

        if args.once:
            logger.info("Running delivery cycle once...")
            result = run_worker_once(
                batch_size=args.batch_size,
                concurrency=args.concurrency,
            )

            # Print summary
            print("\n--- Worker Run Summary ---")
            print(f"Total delivered: {result.total_processed}")
            print(f"Total failed: {result.total_failed}")

            if result.errors:
                print(f"Errors: {len(result.errors)}")
                for err in result.errors:
                    print(f"  - {err}")

            cycle_failed = False
            for name, worker_result in result.worker_results.items():
                print(f"\n{name}:")
                print(f"  Status: {worker_result.status.value}")
                print(f"  Delivered: {worker_result.processed_count}")
                print(f"  Failed: {worker_result.failed_count}")
                print(f"  Expired: {worker_result.metadata.get('expired', 0)}")
                print(f"  Reclaimed: {worker_result.metadata.get('reclaimed', 0)}")
                # Store failures fail the run, delivery failures do not
                if any("item_id" not in err for err in worker_result.errors):
                    cycle_failed = True

            return 0 if not (result.errors or cycle_failed) else 1

        elif args.loop:
            logger.info("Starting delivery loop (Ctrl+C to stop)...")
            run_worker_loop(
                interval_seconds=args.interval,
                max_iterations=args.max_iterations,
                batch_size=args.batch_size,
                concurrency=args.concurrency,
            )
            return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as e:
        logger.error(f"Worker failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
