"""NotificationTask entity model for the persistent delivery queue."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import field_validator
from sqlalchemy import JSON, Column, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

# Upper bound for stored error text
MAX_ERROR_LENGTH = 1000


class NotificationKind(str, Enum):
    """Kinds of events a notification can announce."""

    STREAM_ONLINE = "stream_online"
    STREAM_OFFLINE = "stream_offline"
    TITLE_CHANGE = "title_change"
    CATEGORY_CHANGE = "category_change"
    REWARD_REDEMPTION = "reward_redemption"


class DestinationKind(str, Enum):
    """Chat platforms a notification can be delivered to."""

    TELEGRAM = "telegram"
    DISCORD = "discord"


class TaskStatus(str, Enum):
    """Queue task status.

    pending -> processing -> pending | succeeded | dead.
    succeeded and dead are terminal.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    DEAD = "dead"


TERMINAL_STATUSES = (TaskStatus.SUCCEEDED, TaskStatus.DEAD)


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _enum_type(enum_cls: type[Enum], name: str) -> SAEnum:
    # Store enum values ("pending"), not member names ("PENDING")
    return SAEnum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


class NotificationTask(SQLModel, table=True):
    """Queued notification delivery.

    One row per (destination, notification instance). ``message`` is rendered
    before enqueue so every retry resends identical text.
    """

    __tablename__ = "notification_queue"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    notification_log_id: UUID | None = Field(
        default=None,
        foreign_key="notification_history.id",
        ondelete="SET NULL",
        nullable=True,
    )
    user_id: str = Field(max_length=255, index=True)

    notification_type: NotificationKind = Field(
        sa_type=_enum_type(NotificationKind, "notification_kind")
    )
    content: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON().with_variant(JSONB, "postgresql"), nullable=False),
    )
    message: str

    destination_type: DestinationKind = Field(
        sa_type=_enum_type(DestinationKind, "destination_kind")
    )
    destination_id: str = Field(max_length=255)
    webhook_url: str | None = Field(default=None)

    attempts: int = Field(default=0)
    max_attempts: int = Field(default=5)
    next_attempt_at: datetime = Field(
        default_factory=datetime.utcnow, sa_type=DateTime(), index=True
    )
    expires_at: datetime | None = Field(default=None, sa_type=DateTime(), index=True)

    last_error: str | None = Field(default=None)
    status: TaskStatus = Field(
        default=TaskStatus.PENDING,
        sa_type=_enum_type(TaskStatus, "notification_task_status"),
        index=True,
    )

    # All timestamps are stored as naive UTC
    created_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_type=DateTime())
    # Fresh on every claim; an ack must present the token of the current claim
    claim_token: UUID | None = Field(default=None)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class NotificationTaskCreate(SQLModel):
    """Producer draft for a queued notification.

    ``expires_at`` wins over ``ttl_seconds``; when both are missing the
    expiration policy picks the deadline from the notification kind.
    """

    notification_log_id: UUID | None = None
    user_id: str = Field(min_length=1, max_length=255)
    notification_type: NotificationKind
    content: dict[str, Any] = Field(default_factory=dict)
    message: str = Field(min_length=1)
    destination_type: DestinationKind
    destination_id: str = Field(min_length=1, max_length=255)
    webhook_url: str | None = None
    max_attempts: int | None = Field(default=None, ge=1)
    next_attempt_at: datetime | None = None
    expires_at: datetime | None = None
    ttl_seconds: int | None = Field(default=None, gt=0)

    @field_validator("next_attempt_at", "expires_at")
    @classmethod
    def normalize_to_utc(cls, v: datetime | None) -> datetime | None:
        """Convert offset-aware timestamps to naive UTC."""
        return to_naive_utc(v)


class NotificationTaskResponse(SQLModel):
    """Schema for queue task response."""

    id: UUID
    notification_log_id: UUID | None
    user_id: str
    notification_type: NotificationKind
    content: dict[str, Any]
    message: str
    destination_type: DestinationKind
    destination_id: str
    webhook_url: str | None
    attempts: int
    max_attempts: int
    next_attempt_at: datetime
    expires_at: datetime | None
    last_error: str | None
    status: TaskStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NotificationTaskListResponse(SQLModel):
    """Schema for queue task list response."""

    tasks: list[NotificationTaskResponse]
    total: int


class QueueStatsResponse(SQLModel):
    """Task counts per status."""

    pending: int = 0
    processing: int = 0
    succeeded: int = 0
    dead: int = 0
    total: int = 0
