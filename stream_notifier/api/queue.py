"""Queue inspection and enqueue endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from stream_notifier.api.deps import QueueStore
from stream_notifier.models.notification_task import (
    NotificationTaskCreate,
    NotificationTaskListResponse,
    NotificationTaskResponse,
    QueueStatsResponse,
    TaskStatus,
)
from stream_notifier.services.queue_store import QueueStoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/queue", tags=["Queue"])


def _unavailable(e: QueueStoreError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"Queue store unavailable ({e.operation})",
    )


@router.post(
    "/tasks",
    response_model=NotificationTaskResponse,
    status_code=status.HTTP_201_CREATED,
)
def enqueue_task_endpoint(
    store: QueueStore,
    draft: NotificationTaskCreate,
) -> NotificationTaskResponse:
    """Enqueue a notification for delivery."""
    if draft.expires_at is not None and draft.next_attempt_at is not None:
        if draft.expires_at <= draft.next_attempt_at:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="expires_at must be after next_attempt_at",
            )

    try:
        task_id = store.enqueue(draft)
        task = store.get(task_id)
    except QueueStoreError as e:
        raise _unavailable(e)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return NotificationTaskResponse.model_validate(task)


@router.get("/tasks", response_model=NotificationTaskListResponse)
def list_tasks_endpoint(
    store: QueueStore,
    user_id: str | None = Query(default=None, description="Filter by user"),
    task_status: TaskStatus | None = Query(
        default=None, alias="status", description="Filter by queue status"
    ),
    limit: int = Query(default=50, ge=1, le=100, description="Maximum number of tasks"),
    offset: int = Query(default=0, ge=0, description="Number of tasks to skip"),
) -> NotificationTaskListResponse:
    """List queued notifications, newest first."""
    try:
        tasks, total = store.list_tasks(user_id, task_status, limit, offset)
    except QueueStoreError as e:
        raise _unavailable(e)

    return NotificationTaskListResponse(
        tasks=[NotificationTaskResponse.model_validate(t) for t in tasks],
        total=total,
    )


@router.get("/tasks/{task_id}", response_model=NotificationTaskResponse)
def get_task_endpoint(
    store: QueueStore,
    task_id: UUID,
) -> NotificationTaskResponse:
    """Get a queued notification by ID."""
    try:
        task = store.get(task_id)
    except QueueStoreError as e:
        raise _unavailable(e)

    if task is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Task not found",
        )
    return NotificationTaskResponse.model_validate(task)


@router.get("/stats", response_model=QueueStatsResponse)
def queue_stats_endpoint(store: QueueStore) -> QueueStatsResponse:
    """Task counts per queue status."""
    try:
        counts = store.count_by_status()
    except QueueStoreError as e:
        raise _unavailable(e)

    return QueueStatsResponse(
        **{s.value: counts.get(s, 0) for s in TaskStatus},
        total=sum(counts.values()),
    )
