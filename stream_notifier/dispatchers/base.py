"""Destination dispatcher interface and outcome classification.

A dispatcher sends one rendered message to one destination and reports how
it went. Dispatchers never raise for delivery problems; everything is mapped
onto a ``DeliveryOutcome`` so the worker can decide between retrying and
dead-lettering.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from stream_notifier.models.notification_task import DestinationKind, NotificationTask

logger = logging.getLogger(__name__)

# Statuses worth retrying besides 5xx
TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})


class FailureKind(str, Enum):
    """How a failed delivery should be treated by the queue."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


class OutcomeKind(str, Enum):
    SUCCESS = "success"
    TRANSIENT_FAILURE = "transient_failure"
    PERMANENT_FAILURE = "permanent_failure"


@dataclass(frozen=True)
class DeliveryOutcome:
    """Result of a single delivery attempt.

    Attributes:
        kind: Success or the failure classification
        error: Error description for failures
        retry_after: Seconds the platform asked us to wait (rate limits)
    """

    kind: OutcomeKind
    error: str | None = None
    retry_after: float | None = None

    @classmethod
    def success(cls) -> "DeliveryOutcome":
        return cls(kind=OutcomeKind.SUCCESS)

    @classmethod
    def transient(cls, error: str, retry_after: float | None = None) -> "DeliveryOutcome":
        return cls(kind=OutcomeKind.TRANSIENT_FAILURE, error=error, retry_after=retry_after)

    @classmethod
    def permanent(cls, error: str) -> "DeliveryOutcome":
        return cls(kind=OutcomeKind.PERMANENT_FAILURE, error=error)

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @property
    def failure_kind(self) -> FailureKind | None:
        if self.kind == OutcomeKind.TRANSIENT_FAILURE:
            return FailureKind.TRANSIENT
        if self.kind == OutcomeKind.PERMANENT_FAILURE:
            return FailureKind.PERMANENT
        return None


def _response_detail(response: httpx.Response) -> tuple[str, dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200], {}
    if not isinstance(body, dict):
        return str(body)[:200], {}
    # Telegram uses "description", Discord uses "message"
    detail = body.get("description") or body.get("message") or response.text[:200]
    return str(detail), body


def _retry_after(response: httpx.Response, body: dict[str, Any]) -> float | None:
    candidates = [
        body.get("retry_after"),
        (body.get("parameters") or {}).get("retry_after"),
        response.headers.get("Retry-After"),
    ]
    for value in candidates:
        if value is None:
            continue
        try:
            seconds = float(value)
        except (TypeError, ValueError):
            continue
        if seconds >= 0:
            return seconds
    return None


def classify_response(response: httpx.Response, label: str) -> DeliveryOutcome:
    """Map a platform HTTP response onto a delivery outcome.

    2xx is success. 408/425/429 and 5xx are transient. Every other 4xx
    means the destination or payload is unusable (unknown chat, bot kicked,
    deleted channel, revoked webhook) and is permanent.
    """
    if response.is_success:
        return DeliveryOutcome.success()

    detail, body = _response_detail(response)
    error = f"{label} error ({response.status_code}): {detail}"

    if response.status_code in TRANSIENT_STATUS_CODES or response.status_code >= 500:
        return DeliveryOutcome.transient(error, retry_after=_retry_after(response, body))
    return DeliveryOutcome.permanent(error)


def classify_exception(exc: Exception, label: str) -> DeliveryOutcome:
    """Map an httpx exception onto a delivery outcome."""
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.InvalidURL)):
        return DeliveryOutcome.permanent(f"{label} invalid destination URL: {exc}")
    if isinstance(exc, httpx.TimeoutException):
        return DeliveryOutcome.transient(f"{label} request timed out: {exc}")
    if isinstance(exc, httpx.TransportError):
        return DeliveryOutcome.transient(f"{label} failed to send: {exc}")
    return DeliveryOutcome.transient(f"{label} unexpected error: {exc}")


class Dispatcher(ABC):
    """Sends rendered notifications to one kind of destination."""

    destination_kind: DestinationKind

    def __init__(
        self, client: httpx.Client | None = None, timeout: float = 10.0
    ) -> None:
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._client_lock = threading.Lock()

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(timeout=self.timeout)
            return self._client

    @abstractmethod
    def send(self, task: NotificationTask) -> DeliveryOutcome:
        """Deliver ``task.message`` to the task's destination."""

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def _secrets(self) -> list[str]:
        return []

    def _redact(self, text: str) -> str:
        for secret in self._secrets():
            if secret:
                text = text.replace(secret, "***")
        return text

    def _post(
        self,
        url: str,
        label: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> DeliveryOutcome:
        try:
            response = self.client.post(url, json=payload, headers=headers, params=params)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            outcome = classify_exception(e, label)
        else:
            outcome = classify_response(response, label)

        if outcome.error:
            outcome = DeliveryOutcome(
                kind=outcome.kind,
                error=self._redact(outcome.error),
                retry_after=outcome.retry_after,
            )
        return outcome
