# core/notifier.py
from typing import List

import requests
from tenacity import (
    RetryError,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from .logger import get_logger
from .models import AlertPayload
from .report import build_alert_message

logger = get_logger(__name__)


class WebhookDeliveryError(Exception):
    """Discord answered with a retryable failure (429 or 5xx) or was unreachable."""


class DiscordNotifier:
    """
    Sends price alerts to a Discord channel webhook, mentioning every
    recipient. Delivery is fire-and-forget: failures are logged and reported
    through the return value, never raised.
    """

    def __init__(
        self,
        webhook_url: str,
        session: requests.Session | None = None,
        timeout: int = 30,
        max_attempts: int = 4,
    ):
        self.webhook_url = (webhook_url or "").strip()
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_attempts = max_attempts

    def _post(self, body: dict) -> None:
        @retry(
            wait=wait_exponential_jitter(initial=1, max=30),
            stop=stop_after_attempt(self.max_attempts),
            retry=retry_if_exception_type(WebhookDeliveryError),
        )
        def _attempt() -> None:
            try:
                r = self.session.post(self.webhook_url, json=body, timeout=self.timeout)
            except requests.RequestException as e:
                raise WebhookDeliveryError(str(e)) from e
            if r.status_code == 429 or r.status_code >= 500:
                raise WebhookDeliveryError(f"Discord returned {r.status_code}: {r.text[:200]}")
            r.raise_for_status()

        _attempt()

    def send_alert(self, recipients: List[str], payload: AlertPayload) -> bool:
        if not recipients:
            logger.warning("No recipients for alert on '%s'; skipping send.", payload.item_name)
            return False

        if not self.webhook_url:
            logger.warning(
                "Discord not configured (DISCORD_WEBHOOK_URL); skipping alert for %s.",
                payload.item_name,
            )
            return False

        body = {
            "content": build_alert_message(payload, recipients),
            "allowed_mentions": {"parse": [], "users": list(recipients)[:100]},
        }

        try:
            self._post(body)
        except RetryError as e:
            logger.error("Discord alert for %s failed after retries: %s", payload.item_name, e)
            return False
        except requests.RequestException as e:
            logger.error("Discord rejected alert for %s: %s", payload.item_name, e)
            return False

        logger.info("Alert sent to %s for %s", recipients, payload.item_name)
        return True
