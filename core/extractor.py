# core/extractor.py
"""
Turns rendered listing page HTML into normalized listing entries.

Parsing happens in two steps so that each can be exercised alone:

  parse_listing_page(html)   -> RawListingContent  (DOM lookup only)
  extract_listings(content)  -> list[ListingEntry] (text parsing and policy)

The page shows one highlighted "spotlight" offer followed by a table of
offers ("grid") already sorted by the marketplace.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from .logger import get_logger
from .models import GRID, SPOTLIGHT, ListingEntry, RawListing, RawListingContent

logger = get_logger(__name__)

# "$1,234.56", "$12", "$0.99"; digits must follow the sign directly
PRICE_RE = re.compile(r"\$([0-9][0-9,]*(?:\.[0-9]+)?)")
SHIPPING_INCLUDED_RE = re.compile(r"shipping:\s*included", re.IGNORECASE)
SRCSET_WIDTH_RE = re.compile(r"^(\d+)w$")
WHITESPACE_RE = re.compile(r"\s+")

SPOTLIGHT_PRICE = ".spotlight__price"
SPOTLIGHT_CONDITION = ".spotlight__condition"
SPOTLIGHT_SHIPPING = ".spotlight__shipping"
LISTING_ITEM = ".listing-item"
LISTING_INFO = ".listing-item__listing-data__info"
LISTING_PRICE = ".listing-item__listing-data__info__price"
LISTING_CONDITION = ".listing-item__listing-data__info__condition a"
LISTING_PROMO = ".listing-item__listing-data__listo"
SHIPPING_PRICE = ".shipping-messages__price"
IMAGE = ".lazy-image__wrapper img"

# Selectors the content supplier waits on before reading the page
WAIT_SELECTORS = (
    "span" + SPOTLIGHT_PRICE,
    "section" + SPOTLIGHT_CONDITION,
    LISTING_PRICE,
    LISTING_CONDITION,
    IMAGE,
)


def parse_price_text(text: Optional[str]) -> Optional[Decimal]:
    """Return the first dollar amount found in text, or None."""
    if not text:
        return None
    m = PRICE_RE.search(text)
    if not m:
        return None
    try:
        return Decimal(m.group(1).replace(",", ""))
    except InvalidOperation:
        return None


def parse_shipping_cost(
    shipping_text: Optional[str], shipping_price_text: Optional[str]
) -> Decimal:
    if shipping_text and SHIPPING_INCLUDED_RE.search(shipping_text):
        return Decimal("0")
    cost = parse_price_text(shipping_price_text)
    return cost if cost is not None else Decimal("0")


def normalize_condition(text: Optional[str]) -> Optional[str]:
    """Strip every whitespace character; case is kept as scraped."""
    if text is None:
        return None
    return WHITESPACE_RE.sub("", text)


def select_image_url(src: Optional[str], srcset: Optional[str]) -> Optional[str]:
    """
    Pick the widest candidate from a srcset ("url 200w, url 400w").
    Falls back to src when the set is missing or carries no width descriptors.
    """
    best_url = None
    best_width = 0
    if srcset:
        for candidate in srcset.split(","):
            parts = candidate.strip().split()
            if len(parts) < 2:
                continue
            m = SRCSET_WIDTH_RE.match(parts[1])
            if not m:
                continue
            width = int(m.group(1))
            if width > best_width:
                best_width = width
                best_url = parts[0]
    return best_url or src or None


def _to_entry(raw: RawListing) -> Optional[ListingEntry]:
    base_price = parse_price_text(raw.price_text)
    if base_price is None:
        logger.debug("Dropping %s listing with unparseable price %r", raw.origin, raw.price_text)
        return None
    return ListingEntry(
        base_price=base_price,
        shipping_cost=parse_shipping_cost(raw.shipping_text, raw.shipping_price_text),
        condition=normalize_condition(raw.condition_text),
        origin=raw.origin,
    )


def extract_listings(content: Optional[RawListingContent]) -> List[ListingEntry]:
    """
    Spotlight first, then grid entries in page order. Promotional grid
    placeholders and entries without a parseable price are left out.
    """
    if content is None or content.is_empty:
        return []

    entries: List[ListingEntry] = []
    if content.spotlight is not None:
        entry = _to_entry(content.spotlight)
        if entry is not None:
            entries.append(entry)

    for raw in content.grid:
        if raw.is_promotional:
            continue
        entry = _to_entry(raw)
        if entry is not None:
            entries.append(entry)

    return entries


def content_image_url(content: Optional[RawListingContent]) -> Optional[str]:
    if content is None:
        return None
    return select_image_url(content.image_src, content.image_srcset)


# --- DOM lookup ---------------------------------------------------------------


def _text_or_none(tag: Optional[Tag], sep: str = "") -> Optional[str]:
    if tag is None:
        return None
    return tag.get_text(sep, strip=True)


def _attr(tag: Optional[Tag], name: str) -> Optional[str]:
    if tag is None:
        return None
    val = tag.get(name)
    if isinstance(val, list):
        val = " ".join(val)
    return val if isinstance(val, str) and val else None


def _parse_spotlight(soup: BeautifulSoup) -> Optional[RawListing]:
    price_el = soup.select_one(SPOTLIGHT_PRICE)
    condition_el = soup.select_one(SPOTLIGHT_CONDITION)
    shipping_el = soup.select_one(SPOTLIGHT_SHIPPING)
    if price_el is None and condition_el is None:
        return None
    shipping_price_el = shipping_el.select_one(SHIPPING_PRICE) if shipping_el is not None else None
    return RawListing(
        price_text=_text_or_none(price_el),
        shipping_text=_text_or_none(shipping_el, " "),
        shipping_price_text=_text_or_none(shipping_price_el),
        condition_text=_text_or_none(condition_el, " "),
        origin=SPOTLIGHT,
    )


def _parse_grid_item(item: Tag) -> RawListing:
    if item.select_one(LISTING_PROMO) is not None:
        return RawListing(origin=GRID, is_promotional=True)

    info = item.select_one(LISTING_INFO)
    shipping_text = None
    shipping_price_el = None
    if info is not None:
        # The shipping line is the third block of the listing info column
        blocks = info.find_all(True, recursive=False)
        if len(blocks) > 2:
            shipping_text = blocks[2].get_text(" ", strip=True)
        shipping_price_el = info.select_one(SHIPPING_PRICE)

    return RawListing(
        price_text=_text_or_none(item.select_one(LISTING_PRICE)),
        shipping_text=shipping_text,
        shipping_price_text=_text_or_none(shipping_price_el),
        condition_text=_text_or_none(item.select_one(LISTING_CONDITION), " "),
        origin=GRID,
    )


def parse_listing_page(html: Optional[str]) -> RawListingContent:
    """Read spotlight, grid and image elements out of a rendered page."""
    if not html or not html.strip():
        return RawListingContent()

    soup = BeautifulSoup(html, "html.parser")

    grid: List[RawListing] = []
    for item in soup.select(LISTING_ITEM):
        try:
            grid.append(_parse_grid_item(item))
        except Exception as exc:  # pragma: no cover - malformed markup
            logger.debug("Failed to parse a listing block: %s", exc)

    img = soup.select_one(IMAGE)
    content = RawListingContent(
        spotlight=_parse_spotlight(soup),
        grid=grid,
        image_src=_attr(img, "src"),
        image_srcset=_attr(img, "srcset"),
    )
    logger.debug(
        "Parsed listing page: spotlight=%s, grid=%d, image=%s",
        content.spotlight is not None,
        len(grid),
        bool(content.image_src or content.image_srcset),
    )
    return content
