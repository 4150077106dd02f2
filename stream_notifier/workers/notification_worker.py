"""Notification delivery worker.

Each cycle:
1. Dead-letters tasks past their deadline (no dispatch)
2. Returns tasks abandoned in ``processing`` to ``pending``
3. Claims due tasks and dispatches them concurrently
4. Acknowledges every outcome through the queue store
"""

import logging
import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar
from uuid import UUID

from sqlmodel import Session

from stream_notifier.config import get_settings
from stream_notifier.dispatchers.base import DeliveryOutcome
from stream_notifier.dispatchers.registry import DispatcherRegistry, build_default_registry
from stream_notifier.models.notification_task import NotificationTask, TaskStatus
from stream_notifier.services.backoff import BackoffPolicy
from stream_notifier.services.expiration import ExpirationPolicy
from stream_notifier.services.queue_store import NotificationQueueStore, QueueStoreError
from stream_notifier.workers.base import WorkerBase, WorkerResult

logger = logging.getLogger(__name__)

V = TypeVar("V")


class NotificationWorker(WorkerBase[NotificationTask, DeliveryOutcome]):
    """Worker delivering queued notifications to Telegram and Discord.

    Store operations failing with ``QueueStoreError`` are retried a few
    times before the cycle gives up. A cycle that gives up mid-batch leaves
    its claimed tasks in ``processing``; stale reclamation picks them up
    again later.
    """

    def __init__(
        self,
        registry: DispatcherRegistry | None = None,
        batch_size: int | None = None,
        concurrency: int | None = None,
        stale_after_seconds: int | None = None,
        store_retry_attempts: int | None = None,
        store_retry_delay: float = 0.5,
        backoff: BackoffPolicy | None = None,
        expiration: ExpirationPolicy | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        settings = get_settings()
        super().__init__(
            batch_size=batch_size or settings.NOTIFICATION_RETRY_BATCH_SIZE,
            concurrency=concurrency or settings.NOTIFICATION_RETRY_WORKER_CONCURRENCY,
        )
        self.registry = registry or build_default_registry(settings)
        self.stale_after_seconds = (
            stale_after_seconds or settings.NOTIFICATION_RETRY_STALE_SECONDS
        )
        self.store_retry_attempts = (
            store_retry_attempts or settings.NOTIFICATION_STORE_RETRY_ATTEMPTS
        )
        self.store_retry_delay = store_retry_delay
        self.backoff = backoff or BackoffPolicy.from_settings()
        self.expiration = expiration or ExpirationPolicy.from_settings()
        self.clock = clock
        self._dead_lettered = 0

    @property
    def worker_name(self) -> str:
        return "NotificationWorker"

    def run(self, session: Session) -> WorkerResult:
        self._dead_lettered = 0
        result = super().run(session)
        result.metadata["dead_lettered"] = self._dead_lettered
        return result

    def store(self, session: Session) -> NotificationQueueStore:
        return NotificationQueueStore(
            session, backoff=self.backoff, expiration=self.expiration
        )

    def housekeeping(self, session: Session) -> dict[str, Any]:
        """Sweep expired tasks, then reclaim stale ones."""
        store = self.store(session)
        now = self.clock()

        expired = self._with_store_retry(
            "sweep_expired", lambda: store.sweep_expired(now)
        )
        reclaimed = self._with_store_retry(
            "reclaim_stale",
            lambda: store.reclaim_stale(now, self.stale_after_seconds),
        )
        return {"expired": expired, "reclaimed": reclaimed}

    def fetch_pending(self, session: Session) -> list[NotificationTask]:
        store = self.store(session)
        now = self.clock()
        return self._with_store_retry(
            "claim_batch", lambda: store.claim_batch(now, self.batch_size)
        )

    def process_item(self, item: NotificationTask) -> DeliveryOutcome:
        self._logger.debug(
            f"[{self.worker_name}] Dispatching task {item.id}",
            extra={
                "task_id": str(item.id),
                "destination_type": getattr(item.destination_type, "value", item.destination_type),
                "attempt": item.attempts + 1,
            },
        )
        return self.registry.send(item)

    def error_result(self, item: NotificationTask, error: Exception) -> DeliveryOutcome:
        # A crashing dispatcher is treated like any other transient failure
        return DeliveryOutcome.transient(f"Dispatcher error: {error}")

    def apply_result(
        self, session: Session, item: NotificationTask, result: DeliveryOutcome
    ) -> bool:
        store = self.store(session)
        now = self.clock()

        if result.is_success:
            self._with_store_retry(
                "ack_success",
                lambda: store.ack_success(item.id, now, claim_token=item.claim_token),
            )
            return True

        updated = self._with_store_retry(
            "ack_failure",
            lambda: store.ack_failure(
                item.id,
                result.error or "unknown error",
                result.failure_kind,
                now,
                retry_after=result.retry_after,
                claim_token=item.claim_token,
            ),
        )
        if updated is not None and updated.status == TaskStatus.DEAD:
            self._dead_lettered += 1
        return False

    def failure_details(
        self, item: NotificationTask, result: DeliveryOutcome
    ) -> dict[str, Any]:
        return {
            "classification": result.failure_kind.value if result.failure_kind else None,
            "error": result.error,
        }

    def get_item_id(self, item: NotificationTask) -> UUID:
        return item.id

    def _with_store_retry(self, operation: str, func: Callable[[], V]) -> V:
        """Run a store operation, retrying on storage failures."""
        attempt = 1
        while True:
            try:
                return func()
            except QueueStoreError as e:
                if attempt >= self.store_retry_attempts:
                    raise
                self._logger.warning(
                    f"[{self.worker_name}] Store operation {operation} failed, retrying",
                    extra={"attempt": attempt, "error": str(e)},
                )
                if self.store_retry_delay:
                    time.sleep(self.store_retry_delay * attempt)
                attempt += 1
