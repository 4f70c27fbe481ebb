# core/scheduler.py
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Callable, List, Optional

from .alerts import AlertDecider, AlertDecision
from .extractor import content_image_url, extract_listings
from .history import HistoryResult, HistoryTracker
from .logger import get_logger
from .models import CanonicalPrice, MonitoredItem, RawListingContent
from .selector import select_canonical_price
from .storage import StorageError

logger = get_logger(__name__)


class ItemDeadlineExceeded(Exception):
    """The content supplier did not answer within the per-item deadline."""


@dataclass
class ItemOutcome:
    item_id: str
    canonical: Optional[CanonicalPrice] = None
    history: Optional[HistoryResult] = None
    decision: Optional[AlertDecision] = None
    delivered: bool = False

    @property
    def skipped(self) -> bool:
        return self.canonical is None


@dataclass
class CycleSummary:
    total: int = 0
    priced: int = 0
    skipped: int = 0
    changed: int = 0
    alerted: int = 0
    failed: int = 0
    aborted: bool = False


class PollScheduler:
    """
    Evaluates every monitored item once per cycle, one at a time, waiting
    `item_delay` seconds between items to keep the request rate on the
    marketplace low.

    A failure on one item is logged and the cycle moves on. A cycle asked
    for while another is still running is skipped.
    """

    def __init__(
        self,
        store,
        supplier,
        tracker: HistoryTracker,
        decider: AlertDecider,
        notifier,
        poll_minutes: int = 60,
        item_delay: float = 5,
        item_timeout: float = 180,
        sort: str = "price+shipping",
        sleep: Optional[Callable[[float], object]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.supplier = supplier
        self.tracker = tracker
        self.decider = decider
        self.notifier = notifier
        self.poll_seconds = max(1, poll_minutes) * 60
        self.item_delay = max(0, item_delay)
        self.item_timeout = item_timeout
        self.sort = sort
        self._stop = threading.Event()
        self._sleep = sleep or self._stop.wait
        self._clock = clock
        self._running = threading.Lock()
        self._abandoned: List[Future] = []

    # --- one item -------------------------------------------------------------

    @property
    def abandoned_fetches(self) -> int:
        return sum(1 for f in self._abandoned if not f.done())

    def _await_abandoned(self) -> None:
        """
        Hold the next fetch until timed-out fetches end, for at most one
        more `item_timeout`, so two browsers rarely hit the marketplace at once.
        """
        self._abandoned = [f for f in self._abandoned if not f.done()]
        if not self._abandoned:
            return
        logger.warning(
            "Waiting up to %ss for %d abandoned fetch(es) to finish.",
            self.item_timeout,
            len(self._abandoned),
        )
        _, pending = wait_futures(self._abandoned, timeout=self.item_timeout)
        self._abandoned = list(pending)
        if pending:
            logger.error("%d abandoned fetch(es) still running; continuing.", len(pending))

    def _fetch(self, item: MonitoredItem) -> RawListingContent:
        self._await_abandoned()
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="listing-fetch")
        future = executor.submit(
            self.supplier.fetch_listing_content, item.url, item.seller_verified, self.sort
        )
        try:
            return future.result(timeout=self.item_timeout)
        except FuturesTimeoutError as e:
            future.cancel()
            self._abandoned.append(future)
            raise ItemDeadlineExceeded(
                f"No listing content for {item.url} within {self.item_timeout}s "
                f"({self.abandoned_fetches} fetch(es) abandoned)"
            ) from e
        finally:
            # The worker of a timed-out fetch is tracked in _abandoned, not joined here
            executor.shutdown(wait=False)

    def evaluate_item(self, item: MonitoredItem) -> ItemOutcome:
        effective = item.effective_condition
        logger.info("Checking price for: %s (Condition: %s) [%s]", item.name, effective, item.url)

        content = self._fetch(item)
        listings = extract_listings(content)
        canonical = select_canonical_price(listings, effective, content_image_url(content))

        outcome = ItemOutcome(item_id=item.id, canonical=canonical)
        if canonical is None:
            logger.info("Failed to get current total price for %s. Skipping.", item.name)
            return outcome

        logger.info(
            "Current price for %s: base $%s + shipping $%s = $%s (condition %s)",
            item.name,
            canonical.base_price,
            canonical.shipping_cost,
            canonical.total_price,
            canonical.condition,
        )

        outcome.history = self.tracker.record(item, canonical)
        outcome.decision = self.decider.decide(item, canonical)
        if outcome.decision.should_alert:
            outcome.delivered = self.notifier.send_alert(
                outcome.decision.recipients, outcome.decision.payload
            )
        return outcome

    # --- one cycle ----------------------------------------------------------

    def run_cycle(self) -> Optional[CycleSummary]:
        if not self._running.acquire(blocking=False):
            logger.warning("Previous cycle still running; skipping this one.")
            return None
        try:
            return self._run_cycle()
        finally:
            self._running.release()

    def _run_cycle(self) -> CycleSummary:
        summary = CycleSummary()
        try:
            items: List[MonitoredItem] = self.store.list_monitored_items()
        except StorageError as e:
            logger.error("Cannot read monitored items; aborting this cycle: %s", e)
            summary.aborted = True
            return summary

        if not items:
            logger.warning("No monitored items configured. Add items to start monitoring.")
            return summary

        summary.total = len(items)
        logger.debug("Cycle processing order: %s", [i.id for i in items])

        for index, item in enumerate(items):
            if self._stop.is_set():
                logger.info("Stop requested; ending cycle after %d item(s).", index)
                break
            try:
                outcome = self.evaluate_item(item)
            except ItemDeadlineExceeded as e:
                logger.error("Timed out on %s: %s", item.name, e)
                summary.failed += 1
            except Exception as e:
                logger.exception("Error processing %s (%s): %s", item.name, item.id, e)
                summary.failed += 1
            else:
                if outcome.skipped:
                    summary.skipped += 1
                else:
                    summary.priced += 1
                    if outcome.history and outcome.history.changed:
                        summary.changed += 1
                    if outcome.decision and outcome.decision.should_alert:
                        summary.alerted += 1

            if index < len(items) - 1 and self.item_delay:
                self._sleep(self.item_delay)

        logger.info(
            "Cycle done: %d items, %d priced, %d skipped, %d changed, %d alerted, %d failed.",
            summary.total,
            summary.priced,
            summary.skipped,
            summary.changed,
            summary.alerted,
            summary.failed,
        )
        return summary

    # --- timer ----------------------------------------------------------------

    def run_forever(self) -> None:
        """First cycle immediately, then one cycle per period until stop()."""
        logger.info("Starting price monitoring; poll every %d minutes.", self.poll_seconds // 60)
        while not self._stop.is_set():
            started = self._clock()
            try:
                self.run_cycle()
            except Exception as e:
                logger.exception("Unhandled error in poll cycle: %s", e)

            remaining = self.poll_seconds - (self._clock() - started)
            if remaining > 0:
                logger.info("Sleeping %.1f minutes before next cycle.", remaining / 60)
                self._stop.wait(remaining)
            else:
                logger.warning(
                    "Cycle overran the %d minute period by %.0fs; starting next cycle now.",
                    self.poll_seconds // 60,
                    -remaining,
                )

    def stop(self) -> None:
        self._stop.set()
