# core/publisher.py
import requests

from .logger import get_logger
from .models import PriceChangeEvent

logger = get_logger(__name__)


class NullPublisher:
    def publish(self, event: PriceChangeEvent) -> bool:
        logger.debug("Live updates disabled; dropping change event for %s", event.url_id)
        return False


class WebhookPublisher:
    """
    Pushes price change events as JSON to a subscriber endpoint.
    At most one attempt per change; failures are logged and dropped.
    """

    def __init__(self, endpoint: str, session: requests.Session | None = None, timeout: int = 10):
        self.endpoint = endpoint
        self.session = session or requests.Session()
        self.timeout = timeout

    def publish(self, event: PriceChangeEvent) -> bool:
        try:
            r = self.session.post(
                self.endpoint,
                json={"event": "priceUpdate", "data": event.to_dict()},
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            logger.warning("Live update for %s not delivered: %s", event.url_id, e)
            return False
        logger.debug("Published price update for %s", event.url_id)
        return True


def build_publisher(endpoint: str):
    if endpoint:
        return WebhookPublisher(endpoint)
    return NullPublisher()
