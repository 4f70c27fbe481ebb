"""Tests for alert rendering and Discord delivery."""

from decimal import Decimal
from unittest.mock import MagicMock

import requests

from core.models import AlertPayload
from core.notifier import DiscordNotifier
from core.report import MAX_MESSAGE_LENGTH, build_alert_message, format_mentions

WEBHOOK = "https://discord.example/api/webhooks/1/abc"


def _payload(**overrides):
    fields = dict(
        item_name="Prismatic Booster Box",
        condition="UnopenedFoil",
        base_price=Decimal("28"),
        total_price=Decimal("28"),
        threshold=Decimal("30"),
        url="https://www.tcgplayer.com/product/1",
    )
    fields.update(overrides)
    return AlertPayload(**fields)


def _response(status):
    r = MagicMock()
    r.status_code = status
    r.text = ""
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status} error")
    return r


class TestBuildAlertMessage:
    def test_contents(self):
        text = build_alert_message(_payload(), ["100", "200"])
        assert text.startswith("<@100> <@200> ")
        assert "PRICE ALERT" in text
        assert "Item: Prismatic Booster Box (Condition: UnopenedFoil)" in text
        assert "Total Price: $28.00!" in text
        assert "Threshold: $30.00" in text
        assert "Link: https://www.tcgplayer.com/product/1" in text

    def test_unknown_condition(self):
        assert "(Condition: Unknown)" in build_alert_message(_payload(condition=None), [])

    def test_truncated_to_limit(self):
        text = build_alert_message(_payload(item_name="x" * 3000), ["1"])
        assert len(text) == MAX_MESSAGE_LENGTH

    def test_mentions(self):
        assert format_mentions([]) == ""
        assert format_mentions(["7"]) == "<@7>"


class TestDiscordNotifier:
    def test_posts_content_and_allowed_mentions(self):
        session = MagicMock()
        session.post.return_value = _response(204)
        notifier = DiscordNotifier(WEBHOOK, session=session, max_attempts=1)

        assert notifier.send_alert(["100", "200"], _payload()) is True

        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args[0] == WEBHOOK
        assert kwargs["json"]["allowed_mentions"] == {"parse": [], "users": ["100", "200"]}
        assert "<@100>" in kwargs["json"]["content"]

    def test_not_configured(self):
        session = MagicMock()
        notifier = DiscordNotifier("", session=session)
        assert notifier.send_alert(["100"], _payload()) is False
        session.post.assert_not_called()

    def test_no_recipients(self):
        session = MagicMock()
        notifier = DiscordNotifier(WEBHOOK, session=session)
        assert notifier.send_alert([], _payload()) is False
        session.post.assert_not_called()

    def test_retryable_failure_returns_false(self):
        session = MagicMock()
        session.post.return_value = _response(503)
        notifier = DiscordNotifier(WEBHOOK, session=session, max_attempts=1)
        assert notifier.send_alert(["100"], _payload()) is False

    def test_network_error_returns_false(self):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("down")
        notifier = DiscordNotifier(WEBHOOK, session=session, max_attempts=1)
        assert notifier.send_alert(["100"], _payload()) is False

    def test_client_error_is_not_retried(self):
        session = MagicMock()
        session.post.return_value = _response(400)
        notifier = DiscordNotifier(WEBHOOK, session=session, max_attempts=3)
        assert notifier.send_alert(["100"], _payload()) is False
        assert session.post.call_count == 1
