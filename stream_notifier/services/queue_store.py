"""Persistent notification queue store.

The ``notification_queue`` table is the single source of truth for delivery
state. Workers never hold authoritative task state; every transition goes
through one of the operations below, and each operation is its own unit of
work (commit on success, rollback and ``QueueStoreError`` on storage errors).

Claims use compare-and-swap: a row is moved to ``processing`` with
``UPDATE ... WHERE id = :id AND status = 'pending'`` and only counted as
claimed when exactly one row was affected. Two concurrent claimers can both
see a candidate, but only one of them gets it. Each claim stamps a fresh
``claim_token``; acks that present a token only apply to that claim, so a
late ack from a worker whose task was reclaimed cannot touch a newer claim.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from stream_notifier.config import get_settings
from stream_notifier.dispatchers.base import FailureKind
from stream_notifier.models.notification_log import LogStatus
from stream_notifier.models.notification_task import (
    MAX_ERROR_LENGTH,
    NotificationTask,
    NotificationTaskCreate,
    TaskStatus,
    to_naive_utc,
)
from stream_notifier.services.backoff import BackoffPolicy
from stream_notifier.services.delivery_log import NotificationLogUpdater
from stream_notifier.services.expiration import ExpirationPolicy

logger = logging.getLogger(__name__)

EXPIRED_REASON = "expired"
EXPIRED_LOG_MESSAGE = "Notification expired"

ACTIVE_STATUSES = (TaskStatus.PENDING, TaskStatus.PROCESSING)


class QueueStoreError(RuntimeError):
    """A storage-layer failure (I/O, constraint violation) in a queue operation.

    The operation had no effect. Callers retry the operation itself; this is
    never a delivery failure.
    """

    def __init__(self, operation: str, original: Exception) -> None:
        super().__init__(f"Queue store operation '{operation}' failed: {original}")
        self.operation = operation
        self.original = original


class NotificationQueueStore:
    """Atomic operations over the notification queue table.

    Usage:
        store = NotificationQueueStore(session)
        task_id = store.enqueue(draft)
        for task in store.claim_batch(limit=10):
            ...
            store.ack_success(task.id)
    """

    def __init__(
        self,
        session: Session,
        backoff: BackoffPolicy | None = None,
        expiration: ExpirationPolicy | None = None,
        log_updater: NotificationLogUpdater | None = None,
        default_max_attempts: int | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            session: Database session owned by the caller
            backoff: Retry delay policy (default from settings)
            expiration: TTL policy used when a draft has no deadline
            log_updater: Collaborator updating notification history rows
            default_max_attempts: Retry budget when a draft gives none
        """
        self.session = session
        self.backoff = backoff or BackoffPolicy.from_settings()
        self.expiration = expiration or ExpirationPolicy.from_settings()
        self.log_updater = log_updater or NotificationLogUpdater()
        self.default_max_attempts = (
            default_max_attempts or get_settings().NOTIFICATION_RETRY_MAX_ATTEMPTS
        )

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def enqueue(self, draft: NotificationTaskCreate, now: datetime | None = None) -> UUID:
        """Insert a new pending task and return its id.

        ``expires_at`` defaults to ``created_at + ttl`` where the TTL comes
        from ``draft.ttl_seconds`` or the expiration policy.
        """
        now = to_naive_utc(now) or datetime.utcnow()

        max_attempts = (
            draft.max_attempts if draft.max_attempts is not None else self.default_max_attempts
        )
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        expires_at = draft.expires_at
        if expires_at is None:
            expires_at = self.expiration.deadline(
                draft.notification_type, now, draft.ttl_seconds
            )

        task = NotificationTask(
            id=uuid4(),
            notification_log_id=draft.notification_log_id,
            user_id=draft.user_id,
            notification_type=draft.notification_type,
            content=dict(draft.content),
            message=draft.message,
            destination_type=draft.destination_type,
            destination_id=draft.destination_id,
            webhook_url=draft.webhook_url,
            attempts=0,
            max_attempts=max_attempts,
            next_attempt_at=draft.next_attempt_at or now,
            expires_at=expires_at,
            status=TaskStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        task_id = task.id

        with self._transaction("enqueue"):
            self.session.add(task)

        logger.info(
            "Notification task enqueued",
            extra={
                "task_id": str(task_id),
                "notification_type": draft.notification_type.value,
                "destination_type": draft.destination_type.value,
                "expires_at": expires_at.isoformat(),
            },
        )
        return task_id

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def claim_batch(
        self, now: datetime | None = None, limit: int = 50
    ) -> list[NotificationTask]:
        """Claim up to ``limit`` due, unexpired pending tasks.

        Candidates are taken oldest ``next_attempt_at`` first. The returned
        tasks are detached copies in ``processing`` state.
        """
        if limit <= 0:
            return []
        now = to_naive_utc(now) or datetime.utcnow()

        with self._transaction("claim_batch"):
            candidate_ids = self._candidate_ids(now, limit)
            claimed_ids = [
                task_id for task_id in candidate_ids if self._claim_one(task_id, now)
            ]
            if not claimed_ids:
                return []

            tasks = list(
                self.session.exec(
                    select(NotificationTask)
                    .where(NotificationTask.id.in_(claimed_ids))
                    .order_by(NotificationTask.next_attempt_at)
                    .execution_options(populate_existing=True)
                ).all()
            )
            # Workers get local copies only
            for task in tasks:
                self.session.expunge(task)

        if len(claimed_ids) < len(candidate_ids):
            logger.debug(
                "Some candidates were claimed elsewhere",
                extra={"candidates": len(candidate_ids), "claimed": len(claimed_ids)},
            )
        return tasks

    def ack_success(
        self,
        task_id: UUID,
        now: datetime | None = None,
        claim_token: UUID | None = None,
    ) -> NotificationTask | None:
        """Mark a claimed task as delivered and its log entry as sent.

        ``claim_token`` is the token of the claimed copy. When given, the ack
        only applies to that claim, not to a later one made after reclaim.

        Returns the updated task, or None if the task is no longer being
        processed under that claim (expired by a sweep or reclaimed in the
        meantime).
        """
        now = to_naive_utc(now) or datetime.utcnow()

        with self._transaction("ack_success"):
            task = self._load(task_id)
            if not self._is_processing(task, task_id, "ack_success", claim_token):
                return None

            if not self._transition(
                task_id,
                TaskStatus.PROCESSING,
                held_token=claim_token,
                status=TaskStatus.SUCCEEDED,
                claim_token=None,
                updated_at=now,
            ):
                return None
            self.log_updater.mark_delivered(
                self.session, task.notification_log_id, LogStatus.SENT
            )
            updated = self._load(task_id)

        logger.info("Notification task delivered", extra={"task_id": str(task_id)})
        return updated

    def ack_failure(
        self,
        task_id: UUID,
        error: str,
        classification: FailureKind | str,
        now: datetime | None = None,
        retry_after: float | None = None,
        claim_token: UUID | None = None,
    ) -> NotificationTask | None:
        """Record a failed delivery attempt.

        Permanent failures and exhausted budgets move the task to ``dead``.
        Otherwise the task goes back to ``pending`` with the next attempt
        delayed by the backoff policy (or ``retry_after`` when the platform
        asked for longer).

        Returns the updated task, or None if the task is no longer being
        processed under ``claim_token`` (see ``ack_success``).
        """
        now = to_naive_utc(now) or datetime.utcnow()
        classification = FailureKind(classification)
        error = (error or "unknown error")[:MAX_ERROR_LENGTH]

        with self._transaction("ack_failure"):
            task = self._load(task_id)
            if not self._is_processing(task, task_id, "ack_failure", claim_token):
                return None

            attempts_before = task.attempts
            attempts_after = min(attempts_before + 1, task.max_attempts)
            exhausted = attempts_before + 1 >= task.max_attempts

            values: dict[str, Any] = {
                "attempts": attempts_after,
                "last_error": error,
                "claim_token": None,
                "updated_at": now,
            }
            if classification == FailureKind.PERMANENT or exhausted:
                values["status"] = TaskStatus.DEAD
                log_status = LogStatus.FAILED
            else:
                delay = self.backoff.delay_seconds(attempts_before)
                if retry_after is not None:
                    delay = max(delay, retry_after)
                values["status"] = TaskStatus.PENDING
                values["next_attempt_at"] = max(
                    task.next_attempt_at, now + timedelta(seconds=delay)
                )
                log_status = LogStatus.PENDING

            if not self._transition(
                task_id, TaskStatus.PROCESSING, held_token=claim_token, **values
            ):
                return None
            self.log_updater.mark_delivered(
                self.session, task.notification_log_id, log_status, error
            )
            updated = self._load(task_id)

        if values["status"] == TaskStatus.DEAD:
            logger.warning(
                "Notification task moved to dead-letter",
                extra={
                    "task_id": str(task_id),
                    "attempts": attempts_after,
                    "classification": classification.value,
                    "error": error,
                },
            )
        else:
            logger.info(
                "Notification task rescheduled",
                extra={
                    "task_id": str(task_id),
                    "attempts": attempts_after,
                    "next_attempt_at": values["next_attempt_at"].isoformat(),
                    "error": error,
                },
            )
        return updated

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Dead-letter every pending/processing task past its deadline.

        No dispatch happens. Returns the number of tasks expired.
        """
        now = to_naive_utc(now) or datetime.utcnow()
        expired = 0

        with self._transaction("sweep_expired"):
            rows = self.session.exec(
                select(NotificationTask.id, NotificationTask.notification_log_id)
                .where(NotificationTask.status.in_(ACTIVE_STATUSES))
                .where(NotificationTask.expires_at.is_not(None))
                .where(NotificationTask.expires_at <= now)
            ).all()

            for task_id, log_id in rows:
                moved = self._transition(
                    task_id,
                    ACTIVE_STATUSES,
                    status=TaskStatus.DEAD,
                    last_error=EXPIRED_REASON,
                    claim_token=None,
                    updated_at=now,
                )
                if not moved:
                    continue
                expired += 1
                self.log_updater.mark_delivered(
                    self.session, log_id, LogStatus.FAILED, EXPIRED_LOG_MESSAGE
                )

        if expired:
            logger.info("Expired notification tasks swept", extra={"count": expired})
        return expired

    def reclaim_stale(
        self,
        now: datetime | None = None,
        staleness_threshold: timedelta | int | None = None,
    ) -> int:
        """Return tasks stuck in ``processing`` to ``pending``.

        A task is stale when it has not been updated for
        ``staleness_threshold`` (its worker most likely died). Attempts are
        left unchanged. The threshold defaults to
        ``NOTIFICATION_RETRY_STALE_SECONDS``. Returns the number of tasks
        reclaimed.
        """
        now = to_naive_utc(now) or datetime.utcnow()
        if staleness_threshold is None:
            staleness_threshold = get_settings().NOTIFICATION_RETRY_STALE_SECONDS
        if not isinstance(staleness_threshold, timedelta):
            staleness_threshold = timedelta(seconds=staleness_threshold)
        cutoff = now - staleness_threshold
        reclaimed = 0

        with self._transaction("reclaim_stale"):
            stale_ids = self.session.exec(
                select(NotificationTask.id)
                .where(NotificationTask.status == TaskStatus.PROCESSING)
                .where(NotificationTask.updated_at <= cutoff)
            ).all()

            for task_id in stale_ids:
                result = self.session.connection().execute(
                    update(NotificationTask)
                    .where(NotificationTask.id == task_id)
                    .where(NotificationTask.status == TaskStatus.PROCESSING)
                    .where(NotificationTask.updated_at <= cutoff)
                    .values(status=TaskStatus.PENDING, claim_token=None, updated_at=now)
                )
                reclaimed += result.rowcount

        if reclaimed:
            logger.warning(
                "Reclaimed stale processing tasks",
                extra={"count": reclaimed, "threshold_seconds": staleness_threshold.total_seconds()},
            )
        return reclaimed

    # ------------------------------------------------------------------
    # Operator queries
    # ------------------------------------------------------------------

    def get(self, task_id: UUID) -> NotificationTask | None:
        with self._transaction("get"):
            return self._load(task_id)

    def list_tasks(
        self,
        user_id: str | None = None,
        status: TaskStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[NotificationTask], int]:
        """List tasks newest first, optionally filtered by user and status."""
        filters = []
        if user_id is not None:
            filters.append(NotificationTask.user_id == user_id)
        if status is not None:
            filters.append(NotificationTask.status == status)

        with self._transaction("list_tasks"):
            total = self.session.exec(
                select(func.count()).select_from(NotificationTask).where(*filters)
            ).one()
            tasks = self.session.exec(
                select(NotificationTask)
                .where(*filters)
                .order_by(NotificationTask.created_at.desc())
                .offset(offset)
                .limit(limit)
            ).all()

        return list(tasks), total

    def count_by_status(self) -> dict[TaskStatus, int]:
        counts = {status: 0 for status in TaskStatus}
        with self._transaction("count_by_status"):
            rows = self.session.exec(
                select(NotificationTask.status, func.count()).group_by(
                    NotificationTask.status
                )
            ).all()
        for status, count in rows:
            counts[TaskStatus(status)] = count
        return counts

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(
                "Queue store operation failed",
                extra={"operation": operation, "error": str(e)},
            )
            raise QueueStoreError(operation, e) from e
        except Exception:
            self.session.rollback()
            raise

    def _candidate_ids(self, now: datetime, limit: int) -> list[UUID]:
        # FOR UPDATE SKIP LOCKED on PostgreSQL; SQLite ignores it
        return list(
            self.session.exec(
                select(NotificationTask.id)
                .where(NotificationTask.status == TaskStatus.PENDING)
                .where(NotificationTask.next_attempt_at <= now)
                .where(
                    or_(
                        NotificationTask.expires_at.is_(None),
                        NotificationTask.expires_at > now,
                    )
                )
                .order_by(NotificationTask.next_attempt_at, NotificationTask.created_at)
                .limit(limit)
                .with_for_update(skip_locked=True)
            ).all()
        )

    def _claim_one(self, task_id: UUID, now: datetime) -> bool:
        return self._transition(
            task_id,
            TaskStatus.PENDING,
            status=TaskStatus.PROCESSING,
            claim_token=uuid4(),
            updated_at=now,
        )

    def _transition(
        self,
        task_id: UUID,
        expected: TaskStatus | tuple[TaskStatus, ...],
        held_token: UUID | None = None,
        **values: Any,
    ) -> bool:
        """Conditionally update one row; True if the row was in ``expected``.

        With ``held_token`` the row must also still carry that claim token.
        """
        if isinstance(expected, TaskStatus):
            expected = (expected,)
        stmt = (
            update(NotificationTask)
            .where(NotificationTask.id == task_id)
            .where(NotificationTask.status.in_(expected))
        )
        if held_token is not None:
            stmt = stmt.where(NotificationTask.claim_token == held_token)
        result = self.session.connection().execute(stmt.values(**values))
        return result.rowcount == 1

    def _load(self, task_id: UUID) -> NotificationTask | None:
        return self.session.exec(
            select(NotificationTask)
            .where(NotificationTask.id == task_id)
            .execution_options(populate_existing=True)
        ).first()

    def _is_processing(
        self,
        task: NotificationTask | None,
        task_id: UUID,
        operation: str,
        claim_token: UUID | None = None,
    ) -> bool:
        if task is None:
            logger.warning(
                "Acknowledged task not found",
                extra={"task_id": str(task_id), "operation": operation},
            )
            return False
        if task.status != TaskStatus.PROCESSING:
            logger.warning(
                "Acknowledgement ignored, task is no longer processing",
                extra={
                    "task_id": str(task_id),
                    "operation": operation,
                    "status": TaskStatus(task.status).value,
                },
            )
            return False
        if claim_token is not None and task.claim_token != claim_token:
            logger.warning(
                "Acknowledgement ignored, task was claimed again",
                extra={"task_id": str(task_id), "operation": operation},
            )
            return False
        return True
