"""NotificationLog entity: the delivery history row shown to operators.

Rows are written by the event-producing side when a notification is first
attempted. The queue only ever updates ``status`` and ``error_message``.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class LogStatus(str, Enum):
    """Delivery state surfaced in the history views."""

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationLog(SQLModel, table=True):
    """Notification history database model."""

    __tablename__ = "notification_history"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: str = Field(max_length=255, index=True)
    notification_type: str = Field(max_length=50, index=True)
    destination_type: str = Field(max_length=50)
    destination_id: str = Field(max_length=255)
    content: str
    status: str = Field(default=LogStatus.SENT.value, max_length=20)
    error_message: str | None = Field(default=None)
    created_at: datetime = Field(
        default_factory=datetime.utcnow, sa_type=DateTime(), index=True
    )
