"""Telegram Bot API dispatcher."""

import httpx

from stream_notifier.dispatchers.base import DeliveryOutcome, Dispatcher
from stream_notifier.models.notification_task import DestinationKind, NotificationTask

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramDispatcher(Dispatcher):
    """Sends messages through ``sendMessage`` of the Telegram Bot API.

    The message is sent verbatim with HTML parse mode; it was rendered
    before the task was queued.
    """

    destination_kind = DestinationKind.TELEGRAM

    def __init__(
        self,
        bot_token: str,
        api_url: str = TELEGRAM_API_URL,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")

    def send(self, task: NotificationTask) -> DeliveryOutcome:
        if not self.bot_token:
            return DeliveryOutcome.transient("Telegram bot token not configured")

        return self._post(
            f"{self.api_url}/bot{self.bot_token}/sendMessage",
            "Telegram API",
            {
                "chat_id": task.destination_id,
                "text": task.message,
                "parse_mode": "HTML",
                "disable_web_page_preview": False,
            },
        )

    def _secrets(self) -> list[str]:
        return [self.bot_token]
