"""Tests for price change detection and history writes."""

from decimal import Decimal
from unittest.mock import MagicMock

from core.history import HistoryTracker, price_changed
from core.models import CanonicalPrice


def _canonical(total, condition="Unopened", image_url=None):
    total = Decimal(total)
    return CanonicalPrice(
        base_price=total,
        total_price=total,
        shipping_cost=Decimal("0"),
        condition=condition,
        image_url=image_url,
    )


class TestPriceChanged:
    def test_no_previous_price(self):
        assert price_changed(None, Decimal("1")) is True

    def test_equal_prices(self):
        assert price_changed(Decimal("20.00"), Decimal("20")) is False

    def test_one_cent_difference(self):
        assert price_changed(Decimal("20.00"), Decimal("20.01")) is True


class TestHistoryTracker:
    def test_first_price_is_recorded(self, store, make_item):
        item = make_item()
        result = HistoryTracker(store).record(item, _canonical("20"))

        assert result.changed and result.persisted
        assert result.previous_price is None
        assert [e.price for e in store.get_price_history(item.url_id)] == [Decimal("20.00")]
        assert store.get_url(item.url_id).has_price_changed is True

    def test_same_price_twice_writes_once(self, store, make_item):
        item = make_item()
        tracker = HistoryTracker(store)
        tracker.record(item, _canonical("20"))
        second = tracker.record(item, _canonical("20.00"))

        assert second.changed is False
        assert second.persisted is False
        assert len(store.get_price_history(item.url_id)) == 1

    def test_new_price_appends(self, store, make_item):
        item = make_item()
        tracker = HistoryTracker(store)
        tracker.record(item, _canonical("20"))
        result = tracker.record(item, _canonical("18.50"))

        assert result.changed
        assert result.previous_price == Decimal("20.00")
        assert store.get_latest_price(item.url_id) == Decimal("18.50")
        assert len(store.get_price_history(item.url_id)) == 2

    def test_unchanged_price_does_not_clear_flag(self, store, make_item):
        item = make_item()
        tracker = HistoryTracker(store)
        tracker.record(item, _canonical("20"))
        tracker.record(item, _canonical("20"))
        assert store.get_url(item.url_id).has_price_changed is True

    def test_unchanged_price_keeps_acknowledged_flag(self, store, make_item):
        item = make_item()
        tracker = HistoryTracker(store)
        tracker.record(item, _canonical("20"))
        store.set_has_price_changed(item.url_id, False)

        result = tracker.record(item, _canonical("20"))

        assert result.changed is False
        assert store.get_url(item.url_id).has_price_changed is False

    def test_image_stored_only_once(self, store, make_item):
        item = make_item()
        tracker = HistoryTracker(store)
        first = tracker.record(item, _canonical("20", image_url="first.jpg"))
        second = tracker.record(item, _canonical("21", image_url="second.jpg"))

        assert first.image_stored is True
        assert second.image_stored is False
        assert store.get_url(item.url_id).image_url == "first.jpg"

    def test_change_is_published(self, store, make_item, fake_publisher):
        item = make_item(owner_name="alice")
        make_item(owner_id="200", owner_name="bob", condition="NearMint")
        HistoryTracker(store, fake_publisher).record(item, _canonical("20"))

        assert len(fake_publisher.events) == 1
        event = fake_publisher.events[0].to_dict()
        assert event["id"] == item.url_id
        assert event["latestPrice"] == "20.00"
        assert event["hasPriceChanged"] is True
        assert event["monitoredItemName"] == item.name
        assert event["ownerNames"] == ["alice", "bob"]

    def test_no_publish_without_change(self, store, make_item, fake_publisher):
        item = make_item()
        tracker = HistoryTracker(store, fake_publisher)
        tracker.record(item, _canonical("20"))
        tracker.record(item, _canonical("20"))
        assert len(fake_publisher.events) == 1

    def test_publisher_failure_keeps_history(self, store, make_item):
        item = make_item()
        publisher = MagicMock()
        publisher.publish.side_effect = RuntimeError("socket closed")

        result = HistoryTracker(store, publisher).record(item, _canonical("20"))

        assert result.persisted
        assert len(store.get_price_history(item.url_id)) == 1
