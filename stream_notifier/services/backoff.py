"""Exponential retry backoff for queued notifications."""

import random
from dataclasses import dataclass, field
from datetime import timedelta

from stream_notifier.config import get_settings


def compute_backoff(attempts: int, base_seconds: int, cap_seconds: int) -> int:
    """Return ``min(base * 2**attempts, cap)`` in whole seconds.

    Negative attempt counts are treated as zero, so the result never drops
    below ``base_seconds`` (or the cap, when the cap is lower).
    """
    attempts = max(attempts, 0)
    delay = base_seconds
    for _ in range(attempts):
        delay *= 2
        if delay >= cap_seconds:
            return cap_seconds
    return min(delay, cap_seconds)


@dataclass
class BackoffPolicy:
    """Retry delay policy.

    Attributes:
        base_seconds: Delay before the first retry
        cap_seconds: Upper bound for any delay
        jitter: Spread delays over [raw / 2, raw] to avoid synchronized retries
    """

    base_seconds: int = 30
    cap_seconds: int = 3600
    jitter: bool = False
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self) -> None:
        if self.base_seconds <= 0:
            raise ValueError("base_seconds must be positive")
        if self.cap_seconds < self.base_seconds:
            raise ValueError("cap_seconds must not be lower than base_seconds")

    @classmethod
    def from_settings(cls) -> "BackoffPolicy":
        settings = get_settings()
        return cls(
            base_seconds=settings.NOTIFICATION_RETRY_INITIAL_BACKOFF_SECONDS,
            cap_seconds=settings.NOTIFICATION_RETRY_MAX_BACKOFF_SECONDS,
            jitter=settings.NOTIFICATION_RETRY_JITTER,
        )

    def delay_seconds(self, attempts: int) -> float:
        raw = compute_backoff(attempts, self.base_seconds, self.cap_seconds)
        if not self.jitter:
            return float(raw)
        return raw / 2 + self.rng.uniform(0, raw / 2)

    def delay(self, attempts: int) -> timedelta:
        return timedelta(seconds=self.delay_seconds(attempts))
