# core/history.py
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .logger import get_logger
from .models import (
    CanonicalPrice,
    MonitoredItem,
    PriceChangeEvent,
    PriceHistoryEntry,
    to_cents,
)

logger = get_logger(__name__)


def price_changed(last_price: Optional[Decimal], current_price: Decimal) -> bool:
    """
    True when there is no recorded price yet or the prices differ.
    Compared on integer cents, with no tolerance band.
    """
    if last_price is None:
        return True
    return to_cents(last_price) != to_cents(current_price)


@dataclass
class HistoryResult:
    changed: bool
    persisted: bool
    previous_price: Optional[Decimal] = None
    entry: Optional[PriceHistoryEntry] = None
    image_stored: bool = False


class HistoryTracker:
    """
    Appends a history entry whenever the canonical price differs from the
    latest recorded one, and flags the url as changed.

    The changed flag is only ever raised here; clearing it is left to an
    explicit acknowledgment.
    """

    def __init__(self, store, publisher=None):
        self.store = store
        self.publisher = publisher

    def record(self, item: MonitoredItem, canonical: CanonicalPrice) -> HistoryResult:
        image_stored = False
        if canonical.image_url:
            image_stored = self.store.set_url_image_if_absent(item.url_id, canonical.image_url)
            if image_stored:
                logger.info("Stored image url for %s: %s", item.name, canonical.image_url)

        last_price = self.store.get_latest_price(item.url_id)
        if last_price is None:
            logger.info("No previous price history found for %s.", item.name)
        else:
            logger.debug("Last recorded price for %s: %s", item.name, last_price)

        if not price_changed(last_price, canonical.total_price):
            return HistoryResult(
                changed=False,
                persisted=False,
                previous_price=last_price,
                image_stored=image_stored,
            )

        entry = self.store.append_price_history(item.url_id, canonical.total_price)
        self.store.set_has_price_changed(item.url_id, True)
        logger.info(
            "Price change detected for %s (%s -> %s). New price history entry added.",
            item.name,
            last_price,
            canonical.total_price,
        )

        self._publish(item, entry)

        return HistoryResult(
            changed=True,
            persisted=True,
            previous_price=last_price,
            entry=entry,
            image_stored=image_stored,
        )

    def _publish(self, item: MonitoredItem, entry: PriceHistoryEntry) -> None:
        if self.publisher is None:
            return
        # Live updates are best effort; the append above already stands.
        try:
            url = self.store.get_url(item.url_id)
            watchers = self.store.list_items_for_url(item.url_id)
            owner_names = list(dict.fromkeys(w.owner_name for w in watchers if w.owner_name))
            event = PriceChangeEvent(
                url_id=item.url_id,
                url=url.url if url else item.url,
                image_url=url.image_url if url else None,
                latest_price=entry.price,
                has_price_changed=url.has_price_changed if url else True,
                item_name=item.name,
                owner_names=owner_names,
            )
            self.publisher.publish(event)
        except Exception as e:
            logger.warning("Failed to publish price change for %s: %s", item.name, e)
