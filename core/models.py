# core/models.py
import datetime
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional

SPOTLIGHT = "spotlight"
GRID = "grid"

FOIL_SUFFIX = "Foil"

_CENT = Decimal("0.01")


class Condition(str, Enum):
    UNOPENED = "Unopened"
    NEAR_MINT = "NearMint"
    LIGHTLY_PLAYED = "LightlyPlayed"
    MODERATELY_PLAYED = "ModeratelyPlayed"
    HEAVILY_PLAYED = "HeavilyPlayed"

    @property
    def label(self) -> str:
        return _CONDITION_LABELS[self]


_CONDITION_LABELS = {
    Condition.UNOPENED: "Unopened",
    Condition.NEAR_MINT: "Near Mint",
    Condition.LIGHTLY_PLAYED: "Lightly Played",
    Condition.MODERATELY_PLAYED: "Moderately Played",
    Condition.HEAVILY_PLAYED: "Heavily Played",
}


def to_cents(value: Decimal) -> int:
    """Convert a money amount to integer minor units, rounding half up."""
    return int((Decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(_CENT)


def format_money(value: Optional[Decimal]) -> str:
    if value is None:
        return "Unavailable"
    return f"${Decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP):,}"


@dataclass
class RawListing:
    """
    One offer as it appears on the page, before any parsing.
    Text fields are None when the element was not present.
    """
    price_text: Optional[str] = None
    shipping_text: Optional[str] = None
    shipping_price_text: Optional[str] = None
    condition_text: Optional[str] = None
    origin: str = GRID
    is_promotional: bool = False


@dataclass
class RawListingContent:
    spotlight: Optional[RawListing] = None
    grid: List[RawListing] = field(default_factory=list)
    image_src: Optional[str] = None
    image_srcset: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self.spotlight is None and not self.grid


@dataclass
class ListingEntry:
    base_price: Decimal
    shipping_cost: Decimal = Decimal("0")
    condition: Optional[str] = None
    origin: str = GRID

    @property
    def total_price(self) -> Decimal:
        return self.base_price + self.shipping_cost


@dataclass
class CanonicalPrice:
    base_price: Decimal
    total_price: Decimal
    shipping_cost: Decimal
    condition: Optional[str]
    image_url: Optional[str] = None


@dataclass
class UrlRecord:
    id: str
    url: str
    image_url: Optional[str] = None
    has_price_changed: bool = False


@dataclass
class MonitoredItem:
    """
    A user's request to watch one url for a given condition and threshold.
    `url` is the denormalized url string of the referenced UrlRecord.
    """
    id: str
    name: str
    url_id: str
    threshold: Decimal
    condition: Condition
    is_foil: bool = False
    seller_verified: bool = False
    owner_id: str = ""
    owner_name: Optional[str] = None
    url: str = ""

    @property
    def effective_condition(self) -> str:
        if self.is_foil:
            return f"{self.condition.value}{FOIL_SUFFIX}"
        return self.condition.value


@dataclass
class PriceHistoryEntry:
    id: int
    url_id: str
    price: Decimal
    timestamp: datetime.datetime


@dataclass
class AlertPayload:
    item_name: str
    condition: Optional[str]
    base_price: Decimal
    total_price: Decimal
    threshold: Decimal
    url: str


@dataclass
class PriceChangeEvent:
    url_id: str
    url: str
    image_url: Optional[str]
    latest_price: Decimal
    has_price_changed: bool
    item_name: Optional[str]
    owner_names: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.url_id,
            "url": self.url,
            "imageUrl": self.image_url,
            "latestPrice": str(self.latest_price),
            "hasPriceChanged": self.has_price_changed,
            "monitoredItemName": self.item_name,
            "ownerNames": list(self.owner_names),
        }
