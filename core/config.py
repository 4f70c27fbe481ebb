# core/config.py
import os
from dataclasses import dataclass, field
from typing import List

from .logger import get_logger

logger = get_logger(__name__)


def _env_str(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_int(name: str, default: int, minimum: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        value = default
    else:
        try:
            value = int(raw.strip())
        except ValueError:
            logger.warning("Invalid integer for %s=%r; using default %d.", name, raw, default)
            value = default
    if minimum is not None and value < minimum:
        logger.warning("%s=%d is below minimum %d; clamping.", name, value, minimum)
        value = minimum
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> List[str]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return []
    parts = [p.strip() for p in raw.replace(";", ",").split(",")]
    return [p for p in parts if p]


@dataclass
class Settings:
    """
    Runtime settings for the monitor and the management CLI.
    Every field can be overridden through the environment; see from_env().
    """
    db_path: str = "/data/price_monitor.sqlite3"
    mode: str = "daemon"  # "daemon" or "once"
    marketplace: str = "tcgplayer"

    poll_minutes: int = 60
    item_delay_seconds: int = 5
    item_timeout_seconds: int = 180

    discord_webhook_url: str = ""
    live_update_url: str = ""

    browser_headless: bool = True
    page_timeout_ms: int = 60000
    page_settle_ms: int = 10000
    selector_timeout_ms: int = 5000
    sort_preference: str = "price+shipping"

    session_ttl_seconds: int = 900
    admin_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        mode = _env_str("MODE", defaults.mode).lower()
        if mode not in ("daemon", "once"):
            logger.warning("Unknown MODE=%r; using 'daemon'.", mode)
            mode = "daemon"
        return cls(
            db_path=_env_str("DB_PATH", defaults.db_path),
            mode=mode,
            marketplace=_env_str("MARKETPLACE", defaults.marketplace).lower()
            or defaults.marketplace,
            poll_minutes=_env_int("POLL_MINUTES", defaults.poll_minutes, minimum=1),
            item_delay_seconds=_env_int("ITEM_DELAY_SECONDS", defaults.item_delay_seconds, minimum=0),
            item_timeout_seconds=_env_int(
                "ITEM_TIMEOUT_SECONDS", defaults.item_timeout_seconds, minimum=1
            ),
            discord_webhook_url=_env_str("DISCORD_WEBHOOK_URL"),
            live_update_url=_env_str("LIVE_UPDATE_URL"),
            browser_headless=_env_bool("BROWSER_HEADLESS", defaults.browser_headless),
            page_timeout_ms=_env_int("PAGE_TIMEOUT_MS", defaults.page_timeout_ms, minimum=1000),
            page_settle_ms=_env_int("PAGE_SETTLE_MS", defaults.page_settle_ms, minimum=0),
            selector_timeout_ms=_env_int(
                "SELECTOR_TIMEOUT_MS", defaults.selector_timeout_ms, minimum=0
            ),
            sort_preference=_env_str("SORT_PREFERENCE", defaults.sort_preference)
            or defaults.sort_preference,
            session_ttl_seconds=_env_int(
                "SESSION_TTL_SECONDS", defaults.session_ttl_seconds, minimum=1
            ),
            admin_ids=_env_list("ADMIN_IDS"),
        )
