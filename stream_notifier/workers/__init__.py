"""Background workers for notification delivery.

Workers can be started via:
- run_worker_once(): Single processing cycle
- run_worker_loop(): Continuous processing with interval
- scripts/run_workers.py: Command line entry point
"""

from stream_notifier.workers.base import (
    WorkerBase,
    WorkerResult,
    WorkerStatus,
)
from stream_notifier.workers.notification_worker import NotificationWorker
from stream_notifier.workers.runner import (
    WorkerRunner,
    RunnerResult,
    run_worker_once,
    run_worker_loop,
    configure_worker_logging,
)

__all__ = [
    # Base classes
    "WorkerBase",
    "WorkerResult",
    "WorkerStatus",
    # Workers
    "NotificationWorker",
    # Runner
    "WorkerRunner",
    "RunnerResult",
    "run_worker_once",
    "run_worker_loop",
    "configure_worker_logging",
]
