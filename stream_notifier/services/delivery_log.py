"""Delivery log updater.

Reflects queue outcomes on the originating ``notification_history`` row. The
updater joins the caller's transaction and never commits on its own, so a
queue transition and its log update land together.
"""

import logging
from uuid import UUID

from sqlmodel import Session

from stream_notifier.models.notification_log import LogStatus, NotificationLog
from stream_notifier.models.notification_task import MAX_ERROR_LENGTH

logger = logging.getLogger(__name__)


class NotificationLogUpdater:
    """Updates notification history rows for queued deliveries."""

    def mark_delivered(
        self,
        session: Session,
        log_id: UUID | None,
        status: LogStatus,
        error: str | None = None,
    ) -> bool:
        """Set the status (and error) of a history row.

        Args:
            session: Database session of the ongoing queue operation
            log_id: History row id; tasks may carry none
            status: New delivery status
            error: Error message to surface, cleared when None

        Returns:
            True if a row was updated, False if there was nothing to update
        """
        if log_id is None:
            return False

        log = session.get(NotificationLog, log_id)
        if log is None:
            logger.debug(
                "Notification log entry missing, skipping update",
                extra={"log_id": str(log_id), "status": status.value},
            )
            return False

        log.status = status.value
        log.error_message = error[:MAX_ERROR_LENGTH] if error else None
        session.add(log)
        return True
