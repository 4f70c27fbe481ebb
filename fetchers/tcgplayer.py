# fetchers/tcgplayer.py
import datetime
import logging
import os
import time
from pathlib import Path
from urllib.parse import urlparse

import pytz
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from core.config import Settings
from core.extractor import WAIT_SELECTORS, parse_listing_page
from core.logger import get_logger
from core.models import RawListingContent

logger = get_logger(__name__)

DEFAULT_DOMAIN = "www.tcgplayer.com"
DEBUG_DIR = Path(os.getenv("DEBUG_DIR", "/data/debug_dumps"))
COOKIE_LIFETIME_SECONDS = 365 * 24 * 60 * 60
VERIFIED_SELLER_CRITERIA = (
    "M=1&WantVerifiedSellers=True&WantDirect=False"
    "&WantSellersInCart=False&WantWPNSellers=False"
)
USER_AGENT = os.getenv(
    "TCGPLAYER_USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
)


def _sanitize(name: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in name)[:120]


def _dump_html(url: str, html: str) -> None:
    """Write HTML to a timestamped file when DEBUG logging is enabled."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    timestamp = datetime.datetime.now(tz=pytz.UTC).strftime("%Y%m%d_%H%M%S")
    path = DEBUG_DIR / f"tcgplayer_{_sanitize(url)}_{timestamp}.html"
    try:
        DEBUG_DIR.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
        logger.debug("Dumped listing HTML to %s", path)
    except OSError as exc:
        logger.debug("Failed to dump listing HTML to %s: %s", path, exc)


def build_cookies(url: str, seller_verified: bool, sort: str) -> list[dict]:
    """Display preferences the marketplace reads from cookies before rendering."""
    domain = urlparse(url).hostname or DEFAULT_DOMAIN
    expires = time.time() + COOKIE_LIFETIME_SECONDS
    cookies = [
        {
            "name": "product-display-settings",
            "value": f"sort={sort}&size=25",
            "domain": domain,
            "path": "/",
            "expires": expires,
        }
    ]
    if seller_verified:
        cookies.append(
            {
                "name": "SearchCriteria",
                "value": VERIFIED_SELLER_CRITERIA,
                "domain": domain,
                "path": "/",
                "expires": expires,
            }
        )
    return cookies


class TcgplayerContentSupplier:
    """
    Renders a product page in headless Chromium and returns its listing
    content. Browser errors and timeouts yield empty content.
    """

    def __init__(self, settings: Settings):
        self.headless = settings.browser_headless
        self.page_timeout_ms = settings.page_timeout_ms
        self.page_settle_ms = settings.page_settle_ms
        self.selector_timeout_ms = settings.selector_timeout_ms

    def fetch_html(self, url: str, seller_verified: bool, sort: str) -> str:
        with sync_playwright() as p:
            browser = p.chromium.launch(
                headless=self.headless,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            try:
                context = browser.new_context(user_agent=USER_AGENT)
                context.add_cookies(build_cookies(url, seller_verified, sort))
                page = context.new_page()
                page.goto(url, timeout=self.page_timeout_ms)
                page.wait_for_timeout(self.page_settle_ms)
                for selector in WAIT_SELECTORS:
                    try:
                        page.wait_for_selector(selector, timeout=self.selector_timeout_ms)
                    except PlaywrightTimeoutError:
                        logger.debug("Selector %s not found on %s", selector, url)
                return page.content()
            finally:
                browser.close()

    def fetch_listing_content(
        self, url: str, seller_verified: bool = False, sort: str = "price+shipping"
    ) -> RawListingContent:
        logger.debug(
            "Fetching listings at %s (seller_verified=%s, sort=%s)", url, seller_verified, sort
        )
        try:
            html = self.fetch_html(url, seller_verified, sort)
        except PlaywrightError as e:
            logger.error("Browser failed to load %s: %s", url, e)
            return RawListingContent()

        content = parse_listing_page(html)
        if content.is_empty:
            logger.warning("No listings found on %s.", url)
            _dump_html(url, html)
        else:
            logger.info(
                "Found %d listing block(s) on %s",
                len(content.grid) + (1 if content.spotlight else 0),
                url,
            )
        return content
