"""Tests for Telegram and Discord dispatchers.

HTTP is served by httpx.MockTransport; no network access.

Tests cover:
- Request shape per platform
- Response classification (success, transient, permanent)
- Transport errors and missing credentials
- Registry routing
"""

import json

import httpx
import pytest

from stream_notifier.dispatchers.base import (
    DeliveryOutcome,
    FailureKind,
    OutcomeKind,
    classify_response,
)
from stream_notifier.dispatchers.discord import DiscordDispatcher
from stream_notifier.dispatchers.registry import DispatcherRegistry
from stream_notifier.dispatchers.telegram import TelegramDispatcher
from stream_notifier.models.notification_task import (
    DestinationKind,
    NotificationKind,
    NotificationTask,
)

TOKEN = "123456:SECRET-token"


def make_task(**overrides) -> NotificationTask:
    data = {
        "user_id": "user-1",
        "notification_type": NotificationKind.STREAM_ONLINE,
        "message": "<b>streamer</b> is live!",
        "destination_type": DestinationKind.TELEGRAM,
        "destination_id": "-100200300",
    }
    data.update(overrides)
    return NotificationTask(**data)


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


# ============================================================================
# Classification Tests
# ============================================================================

class TestClassifyResponse:
    """Tests for HTTP response classification."""

    @pytest.mark.parametrize("code", [200, 201, 204])
    def test_success(self, code):
        """Any 2xx is a success."""
        outcome = classify_response(httpx.Response(code), "Test")
        assert outcome.is_success
        assert outcome.failure_kind is None

    @pytest.mark.parametrize("code", [408, 425, 429, 500, 502, 503, 504])
    def test_transient(self, code):
        """Timeouts, rate limits and server errors are retried."""
        outcome = classify_response(httpx.Response(code, json={"message": "nope"}), "Test")
        assert outcome.failure_kind == FailureKind.TRANSIENT
        assert outcome.error == f"Test error ({code}): nope"

    @pytest.mark.parametrize("code", [400, 401, 403, 404, 410])
    def test_permanent(self, code):
        """Other client errors are not retried."""
        outcome = classify_response(httpx.Response(code, text="gone"), "Test")
        assert outcome.failure_kind == FailureKind.PERMANENT
        assert outcome.error == f"Test error ({code}): gone"

    def test_retry_after_header(self):
        """Retry-After header is honoured on rate limits."""
        response = httpx.Response(429, headers={"Retry-After": "12"}, text="slow down")
        assert classify_response(response, "Test").retry_after == 12.0

    def test_outcome_constructors(self):
        """Outcome helpers set the matching kind."""
        assert DeliveryOutcome.success().kind == OutcomeKind.SUCCESS
        assert DeliveryOutcome.transient("x").kind == OutcomeKind.TRANSIENT_FAILURE
        assert DeliveryOutcome.permanent("x").kind == OutcomeKind.PERMANENT_FAILURE


# ============================================================================
# Telegram Tests
# ============================================================================

class TestTelegramDispatcher:
    """Tests for TelegramDispatcher."""

    def test_sends_html_message(self):
        """sendMessage is called with the rendered text and HTML mode."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 1}})

        dispatcher = TelegramDispatcher(TOKEN, client=mock_client(handler))
        outcome = dispatcher.send(make_task())

        assert outcome.is_success
        assert len(requests) == 1
        assert requests[0].method == "POST"
        assert str(requests[0].url) == f"https://api.telegram.org/bot{TOKEN}/sendMessage"
        body = json.loads(requests[0].content)
        assert body["chat_id"] == "-100200300"
        assert body["text"] == "<b>streamer</b> is live!"
        assert body["parse_mode"] == "HTML"

    def test_chat_not_found_is_permanent(self):
        """Unknown chat: no point retrying."""
        def handler(request):
            return httpx.Response(400, json={"ok": False, "error_code": 400, "description": "Bad Request: chat not found"})

        outcome = TelegramDispatcher(TOKEN, client=mock_client(handler)).send(make_task())

        assert outcome.failure_kind == FailureKind.PERMANENT
        assert outcome.error == "Telegram API error (400): Bad Request: chat not found"

    def test_rate_limit_is_transient_with_retry_after(self):
        """429 carries Telegram's retry_after parameter."""
        def handler(request):
            return httpx.Response(
                429,
                json={"ok": False, "description": "Too Many Requests", "parameters": {"retry_after": 17}},
            )

        outcome = TelegramDispatcher(TOKEN, client=mock_client(handler)).send(make_task())

        assert outcome.failure_kind == FailureKind.TRANSIENT
        assert outcome.retry_after == 17.0

    def test_server_error_is_transient(self):
        """5xx is retried."""
        outcome = TelegramDispatcher(
            TOKEN, client=mock_client(lambda r: httpx.Response(502, text="Bad Gateway"))
        ).send(make_task())

        assert outcome.failure_kind == FailureKind.TRANSIENT

    def test_timeout_is_transient(self):
        """Timeouts are retried."""
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        outcome = TelegramDispatcher(TOKEN, client=mock_client(handler)).send(make_task())

        assert outcome.failure_kind == FailureKind.TRANSIENT
        assert "timed out" in outcome.error

    def test_connection_error_redacts_token(self):
        """The bot token never ends up in stored errors."""
        def handler(request):
            raise httpx.ConnectError(f"cannot reach {request.url}", request=request)

        outcome = TelegramDispatcher(TOKEN, client=mock_client(handler)).send(make_task())

        assert outcome.failure_kind == FailureKind.TRANSIENT
        assert TOKEN not in outcome.error
        assert "***" in outcome.error

    def test_missing_token_is_transient(self):
        """Missing credentials are retried, the token may be configured later."""
        outcome = TelegramDispatcher("", client=mock_client(lambda r: httpx.Response(200))).send(make_task())

        assert outcome.failure_kind == FailureKind.TRANSIENT
        assert outcome.error == "Telegram bot token not configured"


# ============================================================================
# Discord Tests
# ============================================================================

class TestDiscordDispatcher:
    """Tests for DiscordDispatcher."""

    def test_bot_message(self):
        """Bot deliveries post to the channel with a Bot token."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"id": "1"})

        task = make_task(destination_type=DestinationKind.DISCORD, destination_id="998877")
        outcome = DiscordDispatcher(TOKEN, client=mock_client(handler)).send(task)

        assert outcome.is_success
        assert str(requests[0].url) == "https://discord.com/api/v10/channels/998877/messages"
        assert requests[0].headers["Authorization"] == f"Bot {TOKEN}"
        assert json.loads(requests[0].content) == {"content": "<b>streamer</b> is live!"}

    def test_webhook_message(self):
        """Webhook deliveries need no bot token."""
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"id": "1"})

        task = make_task(
            destination_type=DestinationKind.DISCORD,
            destination_id="998877",
            webhook_url="https://discord.com/api/webhooks/1/abc",
        )
        outcome = DiscordDispatcher("", client=mock_client(handler)).send(task)

        assert outcome.is_success
        assert requests[0].url.path == "/api/webhooks/1/abc"
        assert requests[0].url.params["wait"] == "true"
        assert "Authorization" not in requests[0].headers

    def test_deleted_webhook_is_permanent(self):
        """A revoked webhook is dead for good."""
        def handler(request):
            return httpx.Response(404, json={"message": "Unknown Webhook", "code": 10015})

        task = make_task(
            destination_type=DestinationKind.DISCORD,
            webhook_url="https://discord.com/api/webhooks/1/abc",
        )
        outcome = DiscordDispatcher("", client=mock_client(handler)).send(task)

        assert outcome.failure_kind == FailureKind.PERMANENT
        assert outcome.error == "Discord webhook error (404): Unknown Webhook"

    def test_missing_access_is_permanent(self):
        """Bot without channel access cannot deliver."""
        def handler(request):
            return httpx.Response(403, json={"message": "Missing Access", "code": 50001})

        task = make_task(destination_type=DestinationKind.DISCORD)
        outcome = DiscordDispatcher(TOKEN, client=mock_client(handler)).send(task)

        assert outcome.failure_kind == FailureKind.PERMANENT

    def test_rate_limit_body_retry_after(self):
        """Discord's retry_after in the body is honoured."""
        def handler(request):
            return httpx.Response(429, json={"message": "You are being rate limited.", "retry_after": 2.5})

        task = make_task(destination_type=DestinationKind.DISCORD)
        outcome = DiscordDispatcher(TOKEN, client=mock_client(handler)).send(task)

        assert outcome.failure_kind == FailureKind.TRANSIENT
        assert outcome.retry_after == 2.5

    def test_missing_token_without_webhook(self):
        """Bot delivery without a token is retried."""
        task = make_task(destination_type=DestinationKind.DISCORD)
        outcome = DiscordDispatcher("", client=mock_client(lambda r: httpx.Response(200))).send(task)

        assert outcome.failure_kind == FailureKind.TRANSIENT
        assert outcome.error == "Discord bot token not configured"


# ============================================================================
# Registry Tests
# ============================================================================

class TestDispatcherRegistry:
    """Tests for DispatcherRegistry."""

    def test_routes_by_destination_type(self):
        """Each task goes to the dispatcher for its platform."""
        seen = []

        def handler(request):
            seen.append(request.url.host)
            return httpx.Response(200, json={"ok": True})

        client = mock_client(handler)
        registry = DispatcherRegistry([
            TelegramDispatcher(TOKEN, client=client),
            DiscordDispatcher(TOKEN, client=client),
        ])

        registry.send(make_task())
        registry.send(make_task(destination_type=DestinationKind.DISCORD))

        assert seen == ["api.telegram.org", "discord.com"]

    def test_unknown_destination_is_permanent(self):
        """Unsupported platforms are dead-lettered."""
        registry = DispatcherRegistry()
        task = make_task()
        task.destination_type = "slack"

        outcome = registry.send(task)

        assert outcome.failure_kind == FailureKind.PERMANENT
        assert outcome.error == "Unknown destination type: slack"

    def test_close_leaves_injected_clients_open(self):
        """Clients passed in are owned by the caller."""
        client = mock_client(lambda r: httpx.Response(200))
        registry = DispatcherRegistry([TelegramDispatcher(TOKEN, client=client)])

        registry.close()

        assert not client.is_closed
