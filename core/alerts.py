# core/alerts.py
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from .logger import get_logger
from .models import AlertPayload, CanonicalPrice, MonitoredItem

logger = get_logger(__name__)


def qualifies(canonical: CanonicalPrice, item: MonitoredItem) -> bool:
    """Price strictly below threshold and scraped condition equal to the item's."""
    return (
        canonical.total_price < item.threshold
        and canonical.condition == item.effective_condition
    )


def aggregate_recipients(owner_ids: Iterable[str]) -> List[str]:
    """Distinct owner ids in first-seen order; blanks dropped."""
    return list(dict.fromkeys(o for o in owner_ids if o))


def build_payload(canonical: CanonicalPrice, item: MonitoredItem) -> AlertPayload:
    return AlertPayload(
        item_name=item.name,
        condition=canonical.condition,
        base_price=canonical.base_price,
        total_price=canonical.total_price,
        threshold=item.threshold,
        url=item.url,
    )


@dataclass
class AlertDecision:
    should_alert: bool
    recipients: List[str] = field(default_factory=list)
    payload: Optional[AlertPayload] = None


class AlertDecider:
    """
    Decides whether an item's canonical price warrants an alert, and who
    receives it: every owner watching the same url, not only the owner of
    the item that triggered.

    There is no cooldown. An item whose price stays below threshold is
    announced again on every cycle.
    """

    def __init__(self, store):
        self.store = store

    def decide(self, item: MonitoredItem, canonical: CanonicalPrice) -> AlertDecision:
        if not qualifies(canonical, item):
            logger.info(
                "Total price $%s for %s (condition: %s) is not below threshold $%s "
                "for condition %s. No alert needed.",
                canonical.total_price,
                item.name,
                canonical.condition,
                item.threshold,
                item.effective_condition,
            )
            return AlertDecision(should_alert=False)

        recipients = aggregate_recipients(self.store.list_owners_for_url(item.url_id))
        logger.info(
            "Total price $%s for %s (condition: %s) is below threshold $%s. "
            "Alerting %d recipient(s).",
            canonical.total_price,
            item.name,
            canonical.condition,
            item.threshold,
            len(recipients),
        )
        return AlertDecision(
            should_alert=True,
            recipients=recipients,
            payload=build_payload(canonical, item),
        )
