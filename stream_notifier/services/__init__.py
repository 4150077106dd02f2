"""Queue services.

Services:
- backoff.py: Retry delay policy
- expiration.py: Delivery deadline (TTL) policy
- queue_store.py: Atomic operations on the notification queue table
- delivery_log.py: Notification history updates
- producer.py: Enqueue helper for event producers
"""

from stream_notifier.services.backoff import BackoffPolicy, compute_backoff
from stream_notifier.services.delivery_log import NotificationLogUpdater
from stream_notifier.services.expiration import ExpirationPolicy
from stream_notifier.services.producer import enqueue_notification
from stream_notifier.services.queue_store import NotificationQueueStore, QueueStoreError

__all__ = [
    "BackoffPolicy",
    "compute_backoff",
    "ExpirationPolicy",
    "NotificationLogUpdater",
    "NotificationQueueStore",
    "QueueStoreError",
    "enqueue_notification",
]
