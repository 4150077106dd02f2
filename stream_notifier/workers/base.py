"""Base worker abstraction for queue consumers.

Provides a clean interface for background workers that:
1. Run housekeeping against the store (sweeps, crash recovery)
2. Claim work items from the store
3. Process items concurrently on a bounded thread pool
4. Apply each result back through the store on the cycle thread

Design Principles:
- The database session never leaves the cycle thread
- Pool threads only do I/O on local copies of claimed items
- Testable via direct function calls
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlmodel import Session

logger = logging.getLogger(__name__)


class WorkerStatus(str, Enum):
    """Status of a worker run."""

    SUCCESS = "success"
    PARTIAL = "partial"  # Some items processed, some failed
    FAILED = "failed"
    NO_WORK = "no_work"


@dataclass
class WorkerResult:
    """Result of a worker processing cycle.

    Attributes:
        status: Overall status of the worker run
        processed_count: Number of items successfully processed
        failed_count: Number of items that failed
        duration_ms: Time taken for the processing cycle
        errors: List of error details for failed items
        metadata: Additional worker-specific metadata
    """

    status: WorkerStatus
    processed_count: int = 0
    failed_count: int = 0
    duration_ms: float = 0.0
    errors: list[dict[str, Any]] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "status": self.status.value,
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "duration_ms": self.duration_ms,
            "errors": self.errors,
            "metadata": self.metadata,
        }


# Generic types for work items and per-item results
T = TypeVar("T")
R = TypeVar("R")


class WorkerBase(ABC, Generic[T, R]):
    """Abstract base class for background workers.

    Workers follow this lifecycle each cycle:
    1. housekeeping() - Store maintenance before claiming
    2. fetch_pending() - Claim items to process (exclusive per item)
    3. process_item() - Do the actual work, on a pool thread
    4. apply_result() - Record the result through the store

    Subclasses must implement all abstract methods.
    """

    def __init__(self, batch_size: int = 50, concurrency: int = 10) -> None:
        """Initialize the worker.

        Args:
            batch_size: Maximum items to claim per cycle
            concurrency: Maximum items processed in parallel
        """
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self.batch_size = batch_size
        self.concurrency = concurrency
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def worker_name(self) -> str:
        """Return the worker name for logging."""
        pass

    def housekeeping(self, session: Session) -> dict[str, Any]:
        """Maintenance run before claiming. Returns metadata for the result."""
        return {}

    @abstractmethod
    def fetch_pending(self, session: Session) -> list[T]:
        """Claim items to process (up to batch_size).

        Claimed items must not be handed to any other worker until their
        result is applied.
        """
        pass

    @abstractmethod
    def process_item(self, item: T) -> R:
        """Process a single item on a pool thread.

        Must not touch the database session.
        """
        pass

    @abstractmethod
    def error_result(self, item: T, error: Exception) -> R:
        """Build the result to apply when process_item raised."""
        pass

    @abstractmethod
    def apply_result(self, session: Session, item: T, result: R) -> bool:
        """Apply a processing result.

        Returns:
            True if the item succeeded, False if it failed
        """
        pass

    @abstractmethod
    def get_item_id(self, item: T) -> UUID:
        """Get the unique identifier for an item."""
        pass

    def failure_details(self, item: T, result: R) -> dict[str, Any]:
        """Extra fields recorded for a failed item."""
        return {}

    def run(self, session: Session) -> WorkerResult:
        """Execute one processing cycle.

        This is the main entry point for worker execution.

        Args:
            session: Database session

        Returns:
            WorkerResult with processing statistics
        """
        start_time = datetime.utcnow()
        processed = 0
        failed = 0
        errors: list[dict[str, Any]] = []
        metadata: dict[str, Any] = {}

        self._logger.debug(
            f"[{self.worker_name}] Starting processing cycle",
            extra={"batch_size": self.batch_size, "concurrency": self.concurrency},
        )

        try:
            metadata.update(self.housekeeping(session))

            items = self.fetch_pending(session)

            if not items:
                self._logger.debug(f"[{self.worker_name}] No pending items")
                return WorkerResult(
                    status=WorkerStatus.NO_WORK,
                    duration_ms=self._elapsed_ms(start_time),
                    metadata=metadata,
                )

            self._logger.info(
                f"[{self.worker_name}] Claimed {len(items)} items to process"
            )

            max_workers = min(self.concurrency, len(items))
            with ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix=self.worker_name
            ) as executor:
                futures = {executor.submit(self.process_item, item): item for item in items}

                for future in as_completed(futures):
                    item = futures[future]
                    item_id = self.get_item_id(item)

                    try:
                        result = future.result()
                    except Exception as e:
                        self._logger.error(
                            f"[{self.worker_name}] Processing raised for item {item_id}",
                            extra={"item_id": str(item_id), "error": str(e)},
                            exc_info=True,
                        )
                        result = self.error_result(item, e)

                    if self.apply_result(session, item, result):
                        processed += 1
                    else:
                        failed += 1
                        errors.append({
                            "item_id": str(item_id),
                            **self.failure_details(item, result),
                        })

        except Exception as e:
            self._logger.error(
                f"[{self.worker_name}] Worker cycle failed",
                extra={"error": str(e)},
                exc_info=True,
            )
            return WorkerResult(
                status=WorkerStatus.FAILED,
                processed_count=processed,
                failed_count=failed,
                duration_ms=self._elapsed_ms(start_time),
                errors=errors + [{"error": str(e)}],
                metadata=metadata,
            )

        # Determine overall status
        if failed == 0 and processed > 0:
            status = WorkerStatus.SUCCESS
        elif processed > 0 and failed > 0:
            status = WorkerStatus.PARTIAL
        elif failed > 0:
            status = WorkerStatus.FAILED
        else:
            status = WorkerStatus.NO_WORK

        result = WorkerResult(
            status=status,
            processed_count=processed,
            failed_count=failed,
            duration_ms=self._elapsed_ms(start_time),
            errors=errors,
            metadata=metadata,
        )

        self._logger.info(
            f"[{self.worker_name}] Cycle complete",
            extra=result.to_dict(),
        )

        return result

    def _elapsed_ms(self, start: datetime) -> float:
        """Calculate elapsed time in milliseconds."""
        return (datetime.utcnow() - start).total_seconds() * 1000
