"""SQLModel entities for the notification queue."""

from stream_notifier.models.notification_log import LogStatus, NotificationLog
from stream_notifier.models.notification_task import (
    DestinationKind,
    NotificationKind,
    NotificationTask,
    NotificationTaskCreate,
    NotificationTaskListResponse,
    NotificationTaskResponse,
    QueueStatsResponse,
    TaskStatus,
)

__all__ = [
    "NotificationLog",
    "LogStatus",
    "NotificationTask",
    "NotificationTaskCreate",
    "NotificationTaskResponse",
    "NotificationTaskListResponse",
    "QueueStatsResponse",
    "NotificationKind",
    "DestinationKind",
    "TaskStatus",
]
