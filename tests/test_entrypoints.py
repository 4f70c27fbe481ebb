"""Tests for monitor.py wiring and the manage.py CLI."""

from decimal import Decimal

import pytest

import manage
import monitor
from conftest import FakeNotifier, FakePublisher, FakeSupplier, spotlight_content
from core.config import Settings
from core.storage import CatalogStore

URL = "https://www.tcgplayer.com/product/1"


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(db_path=str(tmp_path / "monitor.sqlite3"), item_delay_seconds=0, admin_ids=["999"])


class TestMonitor:
    def test_run_once(self, settings):
        supplier = FakeSupplier({URL: spotlight_content("$20.00", "Unopened")})
        notifier = FakeNotifier()
        publisher = FakePublisher()
        app = monitor.build_app(settings, supplier=supplier, notifier=notifier, publisher=publisher)
        record = app.store.get_or_create_url(URL)
        app.store.create_item("Box", record.id, Decimal("30"), "Unopened", "100")

        assert monitor.run_once(app) == 0
        assert len(notifier.sent) == 1
        assert len(publisher.events) == 1

    def test_unknown_marketplace(self, settings):
        settings.marketplace = "nowhere"
        with pytest.raises(SystemExit):
            monitor.build_supplier(settings)


class TestManageCli:
    def test_add_list_and_duplicate(self, settings, capsys):
        args = ["add", "--name", "Box", "--url", URL, "--threshold", "30",
                "--condition", "Unopened", "--owner", "100"]
        assert manage.main(args, settings) == 0
        assert manage.main(args, settings) == 1
        assert "already monitored" in capsys.readouterr().err

        assert manage.main(["list", "--actor", "100"], settings) == 0
        assert "Box" in capsys.readouterr().out

    def test_invalid_threshold(self, settings, capsys):
        code = manage.main(
            ["add", "--name", "Box", "--url", URL, "--threshold", "cheap",
             "--condition", "Unopened", "--owner", "100"],
            settings,
        )
        assert code == 1
        assert "Invalid input" in capsys.readouterr().err

    def test_update_and_delete(self, settings, capsys):
        manage.main(
            ["add", "--name", "Box", "--url", URL, "--threshold", "30",
             "--condition", "Unopened", "--owner", "100"],
            settings,
        )
        item = CatalogStore(settings.db_path).list_monitored_items()[0]

        assert manage.main(["update", item.id, "--actor", "200", "--set", "name=Mine"], settings) == 1
        assert manage.main(["update", item.id, "--actor", "100", "--set", "threshold=25"], settings) == 0
        assert CatalogStore(settings.db_path).get_item(item.id).threshold == Decimal("25.00")

        assert manage.main(["delete", item.id, "--actor", "999"], settings) == 0
        assert "Stopped monitoring Box" in capsys.readouterr().out

    def test_urls_history_and_ack(self, settings, capsys):
        store = CatalogStore(settings.db_path)
        store.ensure_db()
        record = store.create_url(URL)
        store.append_price_history(record.id, Decimal("12"))
        store.set_has_price_changed(record.id, True)

        assert manage.main(["history", URL], settings) == 0
        assert "$12.00" in capsys.readouterr().out
        assert manage.main(["ack", record.id], settings) == 0
        assert store.get_url(record.id).has_price_changed is False
        assert manage.main(["urls"], settings) == 0
        assert URL in capsys.readouterr().out
