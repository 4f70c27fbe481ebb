import argparse
import signal
from dataclasses import dataclass
from typing import List, Optional

from core.alerts import AlertDecider
from core.config import Settings
from core.history import HistoryTracker
from core.logger import get_logger
from core.notifier import DiscordNotifier
from core.publisher import build_publisher
from core.scheduler import PollScheduler
from core.storage import CatalogStore
from fetchers import FETCHERS

logger = get_logger(__name__)


@dataclass
class App:
    settings: Settings
    store: CatalogStore
    scheduler: PollScheduler


def build_supplier(settings: Settings):
    supplier_cls = FETCHERS.get(settings.marketplace)
    if supplier_cls is None:
        logger.error(
            "No fetcher registered for marketplace '%s'; known: %s",
            settings.marketplace,
            ", ".join(sorted(FETCHERS)),
        )
        raise SystemExit(1)
    return supplier_cls(settings)


def build_app(settings: Settings, supplier=None, notifier=None, publisher=None) -> App:
    """Wire every collaborator once. Tests pass fakes for the outer three."""
    store = CatalogStore(settings.db_path)
    store.ensure_db()

    tracker = HistoryTracker(
        store, publisher if publisher is not None else build_publisher(settings.live_update_url)
    )
    scheduler = PollScheduler(
        store=store,
        supplier=supplier if supplier is not None else build_supplier(settings),
        tracker=tracker,
        decider=AlertDecider(store),
        notifier=notifier if notifier is not None else DiscordNotifier(settings.discord_webhook_url),
        poll_minutes=settings.poll_minutes,
        item_delay=settings.item_delay_seconds,
        item_timeout=settings.item_timeout_seconds,
        sort=settings.sort_preference,
    )
    return App(settings=settings, store=store, scheduler=scheduler)


def run_once(app: App) -> int:
    summary = app.scheduler.run_cycle()
    if summary is None or summary.aborted:
        return 1
    return 0


def run_daemon(app: App) -> None:
    def _handle_stop(signum, _frame):
        logger.info("Received signal %d; stopping after the current item.", signum)
        app.scheduler.stop()

    signal.signal(signal.SIGTERM, _handle_stop)
    signal.signal(signal.SIGINT, _handle_stop)
    app.scheduler.run_forever()
    logger.info("Monitor stopped.")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Marketplace price monitor")
    parser.add_argument("--once", action="store_true", help="run a single cycle and exit")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    app = build_app(settings)
    if args.once or settings.mode == "once":
        return run_once(app)
    run_daemon(app)
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except SystemExit:
        raise
    except Exception as e:
        logger.exception("Fatal monitor error: %s", e)
        raise SystemExit(2)
