"""Discord dispatcher (bot API and channel webhooks)."""

import httpx

from stream_notifier.dispatchers.base import DeliveryOutcome, Dispatcher
from stream_notifier.models.notification_task import DestinationKind, NotificationTask

DISCORD_API_URL = "https://discord.com/api/v10"


class DiscordDispatcher(Dispatcher):
    """Posts messages to a Discord channel.

    Tasks carrying a ``webhook_url`` go through the webhook and need no bot
    token; everything else is posted by the bot to ``destination_id``.
    """

    destination_kind = DestinationKind.DISCORD

    def __init__(
        self,
        bot_token: str,
        api_url: str = DISCORD_API_URL,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        super().__init__(client=client, timeout=timeout)
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")

    def send(self, task: NotificationTask) -> DeliveryOutcome:
        payload = {"content": task.message}

        if task.webhook_url:
            return self._post(
                task.webhook_url,
                "Discord webhook",
                payload,
                params={"wait": "true"},
            )

        if not self.bot_token:
            return DeliveryOutcome.transient("Discord bot token not configured")

        return self._post(
            f"{self.api_url}/channels/{task.destination_id}/messages",
            "Discord API",
            payload,
            headers={"Authorization": f"Bot {self.bot_token}"},
        )

    def _secrets(self) -> list[str]:
        return [self.bot_token]
