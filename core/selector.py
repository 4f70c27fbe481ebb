# core/selector.py
from typing import List, Optional

from .logger import get_logger
from .models import CanonicalPrice, ListingEntry

logger = get_logger(__name__)


def select_canonical_price(
    listings: List[ListingEntry],
    target_condition: str,
    image_url: Optional[str] = None,
) -> Optional[CanonicalPrice]:
    """
    Pick the cheapest listing (by total price) in the target condition.

    When no listing is in the target condition, the cheapest listing overall
    is returned instead, so a price is surfaced whenever any exists. The
    caller tells the two cases apart by comparing `condition`.
    Ties keep the first entry seen, so the spotlight offer wins exact ties.
    Returns None when there are no listings at all.
    """
    if not listings:
        return None

    matching = [e for e in listings if e.condition == target_condition]
    if matching:
        pool = matching
    else:
        logger.debug(
            "No listing in condition %s among %d; falling back to overall minimum.",
            target_condition,
            len(listings),
        )
        pool = listings

    # min() returns the first of equal keys
    best = min(pool, key=lambda e: e.total_price)
    return CanonicalPrice(
        base_price=best.base_price,
        total_price=best.total_price,
        shipping_cost=best.shipping_cost,
        condition=best.condition,
        image_url=image_url,
    )
