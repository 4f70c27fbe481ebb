"""Tests for the SQLite catalog store."""

import datetime
from decimal import Decimal

import pytest
import pytz

from core.models import Condition
from core.storage import CatalogStore, DuplicateUrlError, NotFoundError, StorageError


class TestUrls:
    def test_create_and_lookup(self, store):
        record = store.create_url("https://www.tcgplayer.com/product/9")
        assert store.get_url(record.id) == record
        assert store.get_url_by_string(record.url) == record
        assert record.has_price_changed is False

    def test_duplicate_url_is_distinguishable(self, store):
        store.create_url("https://www.tcgplayer.com/product/9")
        with pytest.raises(DuplicateUrlError):
            store.create_url("https://www.tcgplayer.com/product/9")

    def test_get_or_create_reuses(self, store):
        first = store.get_or_create_url("https://www.tcgplayer.com/product/9")
        second = store.get_or_create_url("https://www.tcgplayer.com/product/9")
        assert first.id == second.id

    def test_image_first_write_wins(self, store):
        record = store.create_url("https://www.tcgplayer.com/product/9")
        assert store.set_url_image_if_absent(record.id, "a.jpg") is True
        assert store.set_url_image_if_absent(record.id, "b.jpg") is False
        assert store.get_url(record.id).image_url == "a.jpg"

    def test_flag_on_missing_url(self, store):
        with pytest.raises(NotFoundError):
            store.set_has_price_changed("missing", True)


class TestPriceHistory:
    def test_latest_by_timestamp(self, store):
        record = store.create_url("https://www.tcgplayer.com/product/9")
        t0 = datetime.datetime(2024, 1, 1, tzinfo=pytz.UTC)
        store.append_price_history(record.id, Decimal("10"), t0 + datetime.timedelta(hours=2))
        store.append_price_history(record.id, Decimal("12"), t0)

        assert store.get_latest_price(record.id) == Decimal("10.00")
        assert [e.price for e in store.get_price_history(record.id)] == [
            Decimal("12.00"),
            Decimal("10.00"),
        ]

    def test_no_history(self, store):
        record = store.create_url("https://www.tcgplayer.com/product/9")
        assert store.get_latest_price(record.id) is None
        assert store.get_price_history(record.id) == []

    def test_cents_rounding(self, store):
        record = store.create_url("https://www.tcgplayer.com/product/9")
        entry = store.append_price_history(record.id, Decimal("1.005"))
        assert entry.price == Decimal("1.01")


class TestItems:
    def test_round_trip_fields(self, store, make_item):
        item = make_item(threshold="30", condition=Condition.UNOPENED, is_foil=True)
        loaded = store.get_item(item.id)
        assert loaded.threshold == Decimal("30.00")
        assert loaded.condition is Condition.UNOPENED
        assert loaded.effective_condition == "UnopenedFoil"
        assert loaded.url == "https://www.tcgplayer.com/product/1"

    def test_same_watch_twice_is_duplicate(self, make_item):
        make_item()
        with pytest.raises(DuplicateUrlError):
            make_item()

    def test_snapshot_order_is_insertion_order(self, store, make_item):
        a = make_item(url="https://www.tcgplayer.com/product/1")
        b = make_item(url="https://www.tcgplayer.com/product/2")
        c = make_item(url="https://www.tcgplayer.com/product/1", owner_id="200")
        assert [i.id for i in store.list_monitored_items()] == [a.id, b.id, c.id]

    def test_owners_for_url(self, store, make_item):
        a = make_item(owner_id="100")
        make_item(owner_id="200")
        make_item(url="https://www.tcgplayer.com/product/2", owner_id="300")
        assert store.list_owners_for_url(a.url_id) == ["100", "200"]

    def test_update_item(self, store, make_item):
        item = make_item()
        updated = store.update_item(item.id, threshold=Decimal("12.5"), name="Renamed")
        assert updated.threshold == Decimal("12.50")
        assert updated.name == "Renamed"

    def test_update_unknown_field(self, store, make_item):
        item = make_item()
        with pytest.raises(ValueError):
            store.update_item(item.id, owner_id="someone-else")

    def test_update_missing_item(self, store):
        with pytest.raises(NotFoundError):
            store.update_item("missing", name="x")

    def test_delete_keeps_url_and_history(self, store, make_item):
        item = make_item()
        store.append_price_history(item.url_id, Decimal("10"))
        store.delete_item(item.id)

        assert store.get_item(item.id) is None
        assert store.get_url(item.url_id) is not None
        assert len(store.get_price_history(item.url_id)) == 1
        with pytest.raises(NotFoundError):
            store.delete_item(item.id)


class TestSummaries:
    def test_url_summary(self, store, make_item):
        item = make_item(name="Box", owner_name="alice")
        make_item(owner_id="200", owner_name="bob", condition=Condition.NEAR_MINT)
        store.append_price_history(item.url_id, Decimal("25"))
        store.set_has_price_changed(item.url_id, True)

        [summary] = store.list_url_summaries()
        assert summary["id"] == item.url_id
        assert summary["item_name"] == "Box"
        assert summary["latest_price"] == Decimal("25.00")
        assert summary["has_price_changed"] is True
        assert summary["owner_names"] == ["alice", "bob"]


class TestOutOfRange:
    def test_huge_threshold_is_storage_error(self, store):
        record = store.create_url("https://www.tcgplayer.com/product/9")
        with pytest.raises(StorageError):
            store.create_item("Box", record.id, Decimal("1e20"), Condition.UNOPENED, "100")
        assert store.list_monitored_items() == []

    def test_huge_update_is_storage_error(self, store, make_item):
        item = make_item()
        with pytest.raises(StorageError):
            store.update_item(item.id, threshold=Decimal("1e30"))


class TestConnectionErrors:
    def test_unopenable_path(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        s = CatalogStore(str(blocker / "sub" / "db.sqlite3"))
        with pytest.raises(StorageError):
            s.ensure_db()
