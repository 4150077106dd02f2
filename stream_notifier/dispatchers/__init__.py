"""Destination dispatchers for queued notifications."""

from stream_notifier.dispatchers.base import (
    DeliveryOutcome,
    Dispatcher,
    FailureKind,
    OutcomeKind,
    classify_exception,
    classify_response,
)
from stream_notifier.dispatchers.discord import DiscordDispatcher
from stream_notifier.dispatchers.registry import DispatcherRegistry, build_default_registry
from stream_notifier.dispatchers.telegram import TelegramDispatcher

__all__ = [
    "DeliveryOutcome",
    "Dispatcher",
    "FailureKind",
    "OutcomeKind",
    "classify_exception",
    "classify_response",
    "TelegramDispatcher",
    "DiscordDispatcher",
    "DispatcherRegistry",
    "build_default_registry",
]
