"""Enqueue entry point for event producers.

Webhook handlers call ``enqueue_notification`` once per destination after
rendering the message text.
"""

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlmodel import Session

from stream_notifier.models.notification_task import (
    DestinationKind,
    NotificationKind,
    NotificationTaskCreate,
)
from stream_notifier.services.queue_store import NotificationQueueStore

logger = logging.getLogger(__name__)


def enqueue_notification(
    session: Session,
    user_id: str,
    notification_type: NotificationKind | str,
    message: str,
    destination_type: DestinationKind | str,
    destination_id: str,
    content: dict[str, Any] | None = None,
    notification_log_id: UUID | None = None,
    webhook_url: str | None = None,
    expires_at: datetime | None = None,
    ttl_seconds: int | None = None,
    max_attempts: int | None = None,
    store: NotificationQueueStore | None = None,
) -> UUID:
    """Queue one rendered notification for delivery.

    Args:
        session: Database session
        user_id: Owner of the notification settings
        notification_type: Kind of event being announced
        message: Fully rendered message text
        destination_type: Chat platform
        destination_id: Chat or channel id
        content: Structured event payload kept for auditing
        notification_log_id: History row to update with the final outcome
        webhook_url: Discord webhook to post to instead of the bot API
        expires_at: Explicit delivery deadline
        ttl_seconds: Deadline relative to now (ignored if expires_at is set)
        max_attempts: Retry budget override
        store: Queue store to use (created from the session if omitted)

    Returns:
        UUID of the queued task
    """
    draft = NotificationTaskCreate(
        notification_log_id=notification_log_id,
        user_id=user_id,
        notification_type=NotificationKind(notification_type),
        content=content or {},
        message=message,
        destination_type=DestinationKind(destination_type),
        destination_id=destination_id,
        webhook_url=webhook_url,
        max_attempts=max_attempts,
        expires_at=expires_at,
        ttl_seconds=ttl_seconds,
    )
    store = store or NotificationQueueStore(session)
    return store.enqueue(draft)
