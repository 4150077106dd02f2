"""API dependencies for dependency injection."""

from collections.abc import Generator
from typing import Annotated

from fastapi import Depends
from sqlmodel import Session

from stream_notifier.db.session import get_session
from stream_notifier.services.queue_store import NotificationQueueStore


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    yield from get_session()


DBSession = Annotated[Session, Depends(get_db_session)]


def get_queue_store(session: DBSession) -> NotificationQueueStore:
    """Queue store bound to the request session."""
    return NotificationQueueStore(session)


QueueStore = Annotated[NotificationQueueStore, Depends(get_queue_store)]
