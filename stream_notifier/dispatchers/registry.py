"""Dispatcher lookup by destination kind."""

import logging
from collections.abc import Iterable

from stream_notifier.config import Settings, get_settings
from stream_notifier.dispatchers.base import DeliveryOutcome, Dispatcher
from stream_notifier.dispatchers.discord import DiscordDispatcher
from stream_notifier.dispatchers.telegram import TelegramDispatcher
from stream_notifier.models.notification_task import DestinationKind, NotificationTask

logger = logging.getLogger(__name__)


class DispatcherRegistry:
    """Routes a task to the dispatcher registered for its destination kind."""

    def __init__(self, dispatchers: Iterable[Dispatcher] = ()) -> None:
        self._dispatchers: dict[DestinationKind, Dispatcher] = {}
        for dispatcher in dispatchers:
            self.register(dispatcher)

    def register(self, dispatcher: Dispatcher) -> None:
        self._dispatchers[DestinationKind(dispatcher.destination_kind)] = dispatcher

    def get(self, kind: DestinationKind | str) -> Dispatcher | None:
        try:
            return self._dispatchers.get(DestinationKind(kind))
        except ValueError:
            return None

    def send(self, task: NotificationTask) -> DeliveryOutcome:
        dispatcher = self.get(task.destination_type)
        if dispatcher is None:
            kind = getattr(task.destination_type, "value", task.destination_type)
            return DeliveryOutcome.permanent(f"Unknown destination type: {kind}")
        return dispatcher.send(task)

    def close(self) -> None:
        for dispatcher in self._dispatchers.values():
            dispatcher.close()


def build_default_registry(settings: Settings | None = None) -> DispatcherRegistry:
    """Create a registry with Telegram and Discord dispatchers from settings."""
    settings = settings or get_settings()
    timeout = settings.NOTIFICATION_HTTP_TIMEOUT_SECONDS

    if not settings.TELEGRAM_BOT_TOKEN:
        logger.warning("TELEGRAM_BOT_TOKEN not set, Telegram deliveries will be retried")
    if not settings.DISCORD_BOT_TOKEN:
        logger.info("DISCORD_BOT_TOKEN not set, only Discord webhooks can be delivered")

    return DispatcherRegistry([
        TelegramDispatcher(
            settings.TELEGRAM_BOT_TOKEN,
            api_url=settings.TELEGRAM_API_URL,
            timeout=timeout,
        ),
        DiscordDispatcher(
            settings.DISCORD_BOT_TOKEN,
            api_url=settings.DISCORD_API_URL,
            timeout=timeout,
        ),
    ])
