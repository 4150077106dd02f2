"""Worker runner for the notification retry queue.

Provides easy-to-use entry points for running workers:
- run_worker_once(): Single processing cycle
- run_worker_loop(): Continuous processing with interval

Design Principles:
- Works in normal terminal (no special runtime)
- Structured logging for observability
- No silent failures
- Clean shutdown: in-flight deliveries finish and are acknowledged
"""

import logging
import signal
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlmodel import Session

from stream_notifier.config import get_settings
from stream_notifier.db.session import engine
from stream_notifier.dispatchers.registry import DispatcherRegistry
from stream_notifier.workers.base import WorkerBase, WorkerResult
from stream_notifier.workers.notification_worker import NotificationWorker

logger = logging.getLogger(__name__)


@dataclass
class RunnerResult:
    """Result of a complete worker runner cycle.

    Attributes:
        started_at: When the run started
        completed_at: When the run completed
        workers_run: Number of workers executed
        total_processed: Total items processed across all workers
        total_failed: Total items failed across all workers
        worker_results: Individual results per worker
        errors: Top-level errors during run
    """

    started_at: datetime
    completed_at: datetime | None = None
    workers_run: int = 0
    total_processed: int = 0
    total_failed: int = 0
    worker_results: dict[str, WorkerResult] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": (
                (self.completed_at - self.started_at).total_seconds() * 1000
                if self.completed_at
                else None
            ),
            "workers_run": self.workers_run,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "worker_results": {
                name: result.to_dict()
                for name, result in self.worker_results.items()
            },
            "errors": self.errors,
        }


class WorkerRunner:
    """Drives the notification worker on a poll interval.

    Provides:
    - One cycle per call to run_once()
    - A poll loop that can be woken early by producers
    - Graceful shutdown between cycles

    Usage:
        runner = WorkerRunner()
        result = runner.run_once()
    """

    def __init__(
        self,
        batch_size: int | None = None,
        concurrency: int | None = None,
        registry: DispatcherRegistry | None = None,
        workers: list[WorkerBase] | None = None,
        enabled: bool | None = None,
    ) -> None:
        """Initialize the worker runner.

        Args:
            batch_size: Override default batch size
            concurrency: Override default dispatch concurrency
            registry: Dispatcher registry (default built from settings)
            workers: Explicit worker list, mainly for tests
            enabled: Override NOTIFICATION_RETRY_ENABLED
        """
        settings = get_settings()
        self.batch_size = batch_size or settings.NOTIFICATION_RETRY_BATCH_SIZE
        self.concurrency = concurrency or settings.NOTIFICATION_RETRY_WORKER_CONCURRENCY
        self.enabled = settings.NOTIFICATION_RETRY_ENABLED if enabled is None else enabled

        if workers is None:
            workers = [
                NotificationWorker(
                    registry=registry,
                    batch_size=self.batch_size,
                    concurrency=self.concurrency,
                )
            ]
        self._workers: list[WorkerBase] = workers

        self._logger = logging.getLogger(self.__class__.__name__)
        self._shutdown = threading.Event()
        self._wake = threading.Event()

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    def run_once(self, session: Session | None = None) -> RunnerResult:
        """Execute one complete processing cycle.

        Args:
            session: Optional database session (creates new if not provided)

        Returns:
            RunnerResult with aggregated statistics
        """
        result = RunnerResult(started_at=datetime.utcnow())

        self._logger.debug(
            "Starting worker run",
            extra={"batch_size": self.batch_size, "concurrency": self.concurrency},
        )

        # Create session if not provided
        own_session = session is None
        if own_session:
            session = Session(engine)

        try:
            for worker in self._workers:
                try:
                    worker_result = worker.run(session)
                    result.worker_results[worker.worker_name] = worker_result
                    result.workers_run += 1
                    result.total_processed += worker_result.processed_count
                    result.total_failed += worker_result.failed_count

                except Exception as e:
                    error_msg = f"{worker.worker_name} failed: {str(e)}"
                    result.errors.append(error_msg)
                    self._logger.error(
                        error_msg,
                        extra={"worker": worker.worker_name},
                        exc_info=True,
                    )

        finally:
            if own_session:
                session.close()

        result.completed_at = datetime.utcnow()

        self._logger.debug(
            "Worker run completed",
            extra=result.to_dict(),
        )

        return result

    def run_loop(
        self,
        interval_seconds: float | None = None,
        max_iterations: int | None = None,
        install_signal_handlers: bool = True,
    ) -> int:
        """Run workers continuously until shutdown is requested.

        When the retry queue is disabled the loop idles without claiming
        anything until shutdown.

        Args:
            interval_seconds: Seconds between cycles (default from config)
            max_iterations: Max cycles to run (None for infinite)
            install_signal_handlers: Stop on SIGINT/SIGTERM

        Returns:
            Number of cycles executed
        """
        settings = get_settings()
        interval = interval_seconds or settings.NOTIFICATION_RETRY_POLL_INTERVAL_SECONDS
        iterations = 0

        if install_signal_handlers:
            self._setup_signal_handlers()

        if not self.enabled:
            self._logger.warning(
                "Notification retry queue disabled, worker loop idle until shutdown"
            )
            self._shutdown.wait()
            return iterations

        self._logger.info(
            "Starting worker loop",
            extra={
                "interval_seconds": interval,
                "max_iterations": max_iterations,
                "batch_size": self.batch_size,
                "concurrency": self.concurrency,
            },
        )

        try:
            while not self._shutdown.is_set():
                # Check iteration limit
                if max_iterations is not None and iterations >= max_iterations:
                    self._logger.info(
                        f"Reached max iterations ({max_iterations}), stopping"
                    )
                    break

                self._wake.clear()
                result = self.run_once()
                iterations += 1

                if result.total_processed or result.total_failed or result.errors:
                    self._logger.info(
                        f"Iteration {iterations} complete",
                        extra={
                            "processed": result.total_processed,
                            "failed": result.total_failed,
                            "errors": result.errors,
                        },
                    )

                # Sleep before next iteration, unless woken or stopped
                if not self._shutdown.is_set():
                    self._wake.wait(interval)

        except KeyboardInterrupt:
            self._logger.info("Keyboard interrupt received, shutting down")

        finally:
            self.close()

        self._logger.info(
            "Worker loop stopped",
            extra={"total_iterations": iterations},
        )
        return iterations

    def wake(self) -> None:
        """Start the next cycle now instead of after the poll interval."""
        self._wake.set()

    def request_shutdown(self) -> None:
        """Request graceful shutdown of the loop."""
        self._shutdown.set()
        self._wake.set()

    def close(self) -> None:
        """Release dispatcher HTTP clients."""
        for worker in self._workers:
            registry = getattr(worker, "registry", None)
            if registry is not None:
                registry.close()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        # signal.signal only works in the main thread
        if threading.current_thread() is not threading.main_thread():
            return

        def handle_signal(signum, frame):
            self._logger.info(f"Received signal {signum}, requesting shutdown")
            self.request_shutdown()

        signal.signal(signal.SIGINT, handle_signal)
        signal.signal(signal.SIGTERM, handle_signal)


# Convenience functions for easy usage


def run_worker_once(
    batch_size: int | None = None,
    concurrency: int | None = None,
) -> RunnerResult:
    """Run one delivery cycle and return results.

    Args:
        batch_size: Override default batch size
        concurrency: Override default dispatch concurrency

    Returns:
        RunnerResult with statistics

    Example:
        >>> from stream_notifier.workers import run_worker_once
        >>> result = run_worker_once()
        >>> print(f"Processed: {result.total_processed}")
    """
    runner = WorkerRunner(batch_size=batch_size, concurrency=concurrency)
    try:
        return runner.run_once()
    finally:
        runner.close()


def run_worker_loop(
    interval_seconds: float | None = None,
    max_iterations: int | None = None,
    batch_size: int | None = None,
    concurrency: int | None = None,
) -> int:
    """Run the delivery worker continuously.

    This runs until interrupted (Ctrl+C, SIGTERM) or max_iterations reached.

    Example:
        >>> from stream_notifier.workers import run_worker_loop
        >>> run_worker_loop(interval_seconds=10)  # Ctrl+C to stop
    """
    runner = WorkerRunner(batch_size=batch_size, concurrency=concurrency)
    return runner.run_loop(
        interval_seconds=interval_seconds,
        max_iterations=max_iterations,
    )


# Configure logging for worker runs
def configure_worker_logging(level: int = logging.INFO) -> None:
    """Configure logging for worker processes.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Set specific loggers
    logging.getLogger("stream_notifier").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    # httpx logs every request URL at INFO, which includes the Telegram token
    logging.getLogger("httpx").setLevel(logging.WARNING)
