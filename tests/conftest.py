"""Shared test fixtures for the price monitor."""

import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest

# Keep test runs from writing log files under /data
os.environ.setdefault("LOG_TO_FILE", "false")

# Ensure the project root is importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from core.models import Condition, RawListing, RawListingContent, SPOTLIGHT
from core.sessions import EditSessionStore
from core.storage import CatalogStore


@pytest.fixture
def store(tmp_path) -> CatalogStore:
    """A CatalogStore over an initialized temporary SQLite file."""
    s = CatalogStore(str(tmp_path / "monitor.sqlite3"))
    s.ensure_db()
    return s


@pytest.fixture
def make_item(store):
    """Factory creating a url (if needed) and a monitored item on it."""

    def _make(
        url: str = "https://www.tcgplayer.com/product/1",
        name: str = "Booster Box",
        threshold: str = "30",
        condition: Condition = Condition.UNOPENED,
        owner_id: str = "100",
        owner_name: str | None = "alice",
        is_foil: bool = False,
        seller_verified: bool = False,
    ):
        record = store.get_or_create_url(url)
        return store.create_item(
            name=name,
            url_id=record.id,
            threshold=Decimal(threshold),
            condition=condition,
            owner_id=owner_id,
            owner_name=owner_name,
            is_foil=is_foil,
            seller_verified=seller_verified,
        )

    return _make


class FakeSupplier:
    """Returns canned content per url and records every call."""

    def __init__(self, contents=None, default=None):
        self.contents = dict(contents or {})
        self.default = default if default is not None else RawListingContent()
        self.calls = []

    def fetch_listing_content(self, url, seller_verified=False, sort="price+shipping"):
        self.calls.append((url, seller_verified, sort))
        result = self.contents.get(url, self.default)
        if isinstance(result, Exception):
            raise result
        return result


class FakeNotifier:
    def __init__(self, result: bool = True):
        self.result = result
        self.sent = []

    def send_alert(self, recipients, payload):
        self.sent.append((list(recipients), payload))
        return self.result


class FakePublisher:
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)
        return True


def spotlight_content(price: str, condition: str, shipping: str = "Shipping: Included"):
    """Content holding only a spotlight offer."""
    return RawListingContent(
        spotlight=RawListing(
            price_text=price,
            shipping_text=shipping,
            condition_text=condition,
            origin=SPOTLIGHT,
        )
    )


@pytest.fixture
def fake_supplier() -> FakeSupplier:
    return FakeSupplier()


@pytest.fixture
def fake_notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def fake_publisher() -> FakePublisher:
    return FakePublisher()


@pytest.fixture
def sessions() -> EditSessionStore:
    return EditSessionStore(ttl_seconds=60, max_sessions=8)
