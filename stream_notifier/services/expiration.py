"""Expiration (TTL) policy for queued notifications.

Time-sensitive notifications such as "stream online" are useless a few
minutes after the fact, so every task gets a deadline at enqueue time.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from stream_notifier.config import DEFAULT_NOTIFICATION_TTL_SECONDS, get_settings
from stream_notifier.models.notification_task import NotificationKind


@dataclass
class ExpirationPolicy:
    """Resolve the TTL for a notification.

    Order: caller override, then the per-kind TTL, then ``default_ttl_seconds``.
    """

    default_ttl_seconds: int = DEFAULT_NOTIFICATION_TTL_SECONDS
    ttl_by_kind: dict[NotificationKind, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be positive")
        for kind, ttl in self.ttl_by_kind.items():
            if ttl <= 0:
                raise ValueError(f"TTL for {kind.value} must be positive")

    @classmethod
    def from_settings(cls) -> "ExpirationPolicy":
        settings = get_settings()
        return cls(
            default_ttl_seconds=settings.NOTIFICATION_TTL_DEFAULT_SECONDS,
            ttl_by_kind={
                NotificationKind.STREAM_ONLINE: settings.NOTIFICATION_TTL_STREAM_ONLINE_SECONDS,
                NotificationKind.STREAM_OFFLINE: settings.NOTIFICATION_TTL_STREAM_OFFLINE_SECONDS,
                NotificationKind.TITLE_CHANGE: settings.NOTIFICATION_TTL_TITLE_CHANGE_SECONDS,
                NotificationKind.CATEGORY_CHANGE: settings.NOTIFICATION_TTL_CATEGORY_CHANGE_SECONDS,
                NotificationKind.REWARD_REDEMPTION: settings.NOTIFICATION_TTL_REWARD_REDEMPTION_SECONDS,
            },
        )

    def ttl(
        self, kind: NotificationKind | None, override_seconds: int | None = None
    ) -> timedelta:
        if override_seconds is not None:
            if override_seconds <= 0:
                raise ValueError("TTL override must be positive")
            return timedelta(seconds=override_seconds)
        if kind is not None and kind in self.ttl_by_kind:
            return timedelta(seconds=self.ttl_by_kind[kind])
        return timedelta(seconds=self.default_ttl_seconds)

    def deadline(
        self,
        kind: NotificationKind | None,
        created_at: datetime,
        override_seconds: int | None = None,
    ) -> datetime:
        return created_at + self.ttl(kind, override_seconds)
