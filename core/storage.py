# core/storage.py
import datetime
import os
import sqlite3
import uuid
from contextlib import contextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterator, List, Optional

import pytz

from .logger import get_logger
from .models import (
    Condition,
    MonitoredItem,
    PriceHistoryEntry,
    UrlRecord,
    from_cents,
    to_cents,
)

logger = get_logger(__name__)


class StorageError(Exception):
    """The catalog store could not complete a read or write."""


class DuplicateUrlError(StorageError):
    """A url (or an identical watch on a url) already exists."""


class NotFoundError(StorageError):
    """The requested row does not exist."""


def now_utc() -> datetime.datetime:
    return datetime.datetime.now(tz=pytz.UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS urls (
        id TEXT PRIMARY KEY,
        url TEXT NOT NULL UNIQUE,
        image_url TEXT,
        has_price_changed INTEGER NOT NULL DEFAULT 0,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS monitored_items (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        url_id TEXT NOT NULL REFERENCES urls(id) ON DELETE CASCADE,
        threshold_cents INTEGER NOT NULL,
        condition TEXT NOT NULL,
        is_foil INTEGER NOT NULL DEFAULT 0,
        seller_verified INTEGER NOT NULL DEFAULT 0,
        owner_id TEXT NOT NULL,
        owner_name TEXT,
        created_at TEXT,
        UNIQUE (owner_id, url_id, condition, is_foil)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS price_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url_id TEXT NOT NULL REFERENCES urls(id) ON DELETE CASCADE,
        price_cents INTEGER NOT NULL,
        ts TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_price_history_url_ts ON price_history(url_id, ts)",
    "CREATE INDEX IF NOT EXISTS idx_items_url ON monitored_items(url_id)",
    "CREATE INDEX IF NOT EXISTS idx_items_owner ON monitored_items(owner_id)",
)

_ITEM_SELECT = """
    SELECT i.id, i.name, i.url_id, i.threshold_cents, i.condition, i.is_foil,
           i.seller_verified, i.owner_id, i.owner_name, u.url
    FROM monitored_items i
    JOIN urls u ON u.id = i.url_id
"""

# item attribute -> (column, converter)
_ITEM_COLUMNS = {
    "name": ("name", str),
    "url_id": ("url_id", str),
    "threshold": ("threshold_cents", to_cents),
    "condition": ("condition", lambda c: Condition(c).value),
    "is_foil": ("is_foil", lambda b: 1 if b else 0),
    "seller_verified": ("seller_verified", lambda b: 1 if b else 0),
    "owner_name": ("owner_name", lambda s: s),
}


def _row_to_item(row: sqlite3.Row) -> MonitoredItem:
    return MonitoredItem(
        id=row["id"],
        name=row["name"],
        url_id=row["url_id"],
        threshold=from_cents(row["threshold_cents"]),
        condition=Condition(row["condition"]),
        is_foil=bool(row["is_foil"]),
        seller_verified=bool(row["seller_verified"]),
        owner_id=row["owner_id"],
        owner_name=row["owner_name"],
        url=row["url"],
    )


def _row_to_url(row: sqlite3.Row) -> UrlRecord:
    return UrlRecord(
        id=row["id"],
        url=row["url"],
        image_url=row["image_url"] or None,
        has_price_changed=bool(row["has_price_changed"]),
    )


def _row_to_history(row: sqlite3.Row) -> PriceHistoryEntry:
    return PriceHistoryEntry(
        id=row["id"],
        url_id=row["url_id"],
        price=from_cents(row["price_cents"]),
        timestamp=datetime.datetime.fromisoformat(row["ts"]),
    )


class CatalogStore:
    """
    SQLite-backed store for watched urls, monitored items and price history.

    Prices are kept as integer cents. Every sqlite error surfaces as a
    StorageError; uniqueness conflicts as DuplicateUrlError.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        db_dir = os.path.dirname(self.db_path)
        try:
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            con = sqlite3.connect(self.db_path)
        except (OSError, sqlite3.Error) as e:
            raise StorageError(f"Cannot open database at {self.db_path}: {e}") from e

        con.row_factory = sqlite3.Row
        try:
            con.execute("PRAGMA foreign_keys = ON")
            yield con
            con.commit()
        except sqlite3.IntegrityError as e:
            con.rollback()
            if "UNIQUE" in str(e).upper():
                raise DuplicateUrlError(str(e)) from e
            raise StorageError(str(e)) from e
        except sqlite3.Error as e:
            con.rollback()
            raise StorageError(str(e)) from e
        except (OverflowError, InvalidOperation) as e:
            # Amounts whose cents do not fit an sqlite INTEGER
            con.rollback()
            raise StorageError(f"Value out of range: {e}") from e
        finally:
            con.close()

    def ensure_db(self) -> None:
        with self._connect() as con:
            cur = con.cursor()
            for stmt in SCHEMA:
                cur.execute(stmt)
        logger.debug("Database schema ensured at %s", self.db_path)

    # --- urls -------------------------------------------------------------

    def get_url(self, url_id: str) -> Optional[UrlRecord]:
        with self._connect() as con:
            row = con.execute(
                "SELECT id, url, image_url, has_price_changed FROM urls WHERE id=?",
                (url_id,),
            ).fetchone()
        return _row_to_url(row) if row else None

    def get_url_by_string(self, url: str) -> Optional[UrlRecord]:
        with self._connect() as con:
            row = con.execute(
                "SELECT id, url, image_url, has_price_changed FROM urls WHERE url=?",
                (url,),
            ).fetchone()
        return _row_to_url(row) if row else None

    def create_url(self, url: str) -> UrlRecord:
        """Insert a new url; raises DuplicateUrlError when it already exists."""
        record = UrlRecord(id=_new_id(), url=url)
        with self._connect() as con:
            con.execute(
                "INSERT INTO urls (id, url, image_url, has_price_changed, created_at) "
                "VALUES (?,?,?,?,?)",
                (record.id, record.url, None, 0, now_utc().isoformat()),
            )
        logger.info("Created url record %s for %s", record.id, url)
        return record

    def get_or_create_url(self, url: str) -> UrlRecord:
        existing = self.get_url_by_string(url)
        if existing:
            return existing
        try:
            return self.create_url(url)
        except DuplicateUrlError:
            # Created concurrently between the lookup and the insert
            existing = self.get_url_by_string(url)
            if existing is None:
                raise
            return existing

    def set_url_image_if_absent(self, url_id: str, image_url: str) -> bool:
        """Store the image only when none is stored yet. Returns True if written."""
        with self._connect() as con:
            cur = con.execute(
                "UPDATE urls SET image_url=? "
                "WHERE id=? AND (image_url IS NULL OR image_url='')",
                (image_url, url_id),
            )
            return cur.rowcount > 0

    def set_has_price_changed(self, url_id: str, value: bool) -> None:
        with self._connect() as con:
            cur = con.execute(
                "UPDATE urls SET has_price_changed=? WHERE id=?",
                (1 if value else 0, url_id),
            )
            if cur.rowcount == 0:
                raise NotFoundError(f"Url {url_id} not found")

    # --- price history ------------------------------------------------------

    def get_latest_price(self, url_id: str) -> Optional[Decimal]:
        with self._connect() as con:
            row = con.execute(
                "SELECT price_cents FROM price_history WHERE url_id=? "
                "ORDER BY ts DESC, id DESC LIMIT 1",
                (url_id,),
            ).fetchone()
        return from_cents(row["price_cents"]) if row else None

    def append_price_history(
        self, url_id: str, price: Decimal, timestamp: datetime.datetime | None = None
    ) -> PriceHistoryEntry:
        ts = timestamp or now_utc()
        with self._connect() as con:
            cur = con.execute(
                "INSERT INTO price_history (url_id, price_cents, ts) VALUES (?,?,?)",
                (url_id, to_cents(price), ts.isoformat()),
            )
            entry_id = cur.lastrowid
        return PriceHistoryEntry(
            id=entry_id, url_id=url_id, price=from_cents(to_cents(price)), timestamp=ts
        )

    def get_price_history(self, url_id: str) -> List[PriceHistoryEntry]:
        with self._connect() as con:
            rows = con.execute(
                "SELECT id, url_id, price_cents, ts FROM price_history WHERE url_id=? "
                "ORDER BY ts ASC, id ASC",
                (url_id,),
            ).fetchall()
        return [_row_to_history(r) for r in rows]

    # --- monitored items ------------------------------------------------------

    def list_monitored_items(self) -> List[MonitoredItem]:
        with self._connect() as con:
            rows = con.execute(_ITEM_SELECT + " ORDER BY i.rowid").fetchall()
        return [_row_to_item(r) for r in rows]

    def list_items_for_owner(self, owner_id: str) -> List[MonitoredItem]:
        with self._connect() as con:
            rows = con.execute(
                _ITEM_SELECT + " WHERE i.owner_id=? ORDER BY i.rowid", (owner_id,)
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def list_items_for_url(self, url_id: str) -> List[MonitoredItem]:
        with self._connect() as con:
            rows = con.execute(
                _ITEM_SELECT + " WHERE i.url_id=? ORDER BY i.rowid", (url_id,)
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def list_owners_for_url(self, url_id: str) -> List[str]:
        with self._connect() as con:
            rows = con.execute(
                "SELECT owner_id FROM monitored_items WHERE url_id=? ORDER BY rowid",
                (url_id,),
            ).fetchall()
        return [r["owner_id"] for r in rows]

    def get_item(self, item_id: str) -> Optional[MonitoredItem]:
        with self._connect() as con:
            row = con.execute(_ITEM_SELECT + " WHERE i.id=?", (item_id,)).fetchone()
        return _row_to_item(row) if row else None

    def create_item(
        self,
        name: str,
        url_id: str,
        threshold: Decimal,
        condition: Condition,
        owner_id: str,
        owner_name: Optional[str] = None,
        is_foil: bool = False,
        seller_verified: bool = False,
    ) -> MonitoredItem:
        item_id = _new_id()
        with self._connect() as con:
            con.execute(
                """
                INSERT INTO monitored_items (
                    id, name, url_id, threshold_cents, condition, is_foil,
                    seller_verified, owner_id, owner_name, created_at
                )
                VALUES (?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    item_id,
                    name,
                    url_id,
                    to_cents(threshold),
                    Condition(condition).value,
                    1 if is_foil else 0,
                    1 if seller_verified else 0,
                    owner_id,
                    owner_name,
                    now_utc().isoformat(),
                ),
            )
        item = self.get_item(item_id)
        if item is None:
            raise StorageError(f"Item {item_id} vanished after insert")
        logger.info("Created monitored item %s (%s) for owner %s", item.id, item.name, owner_id)
        return item

    def update_item(self, item_id: str, **changes: Any) -> MonitoredItem:
        sets: List[str] = []
        params: List[Any] = []
        for key, value in changes.items():
            if key not in _ITEM_COLUMNS:
                raise ValueError(f"Field '{key}' cannot be updated")
            column, convert = _ITEM_COLUMNS[key]
            sets.append(f"{column}=?")
            try:
                params.append(convert(value))
            except (OverflowError, InvalidOperation) as e:
                raise StorageError(f"Value out of range for {key}: {e}") from e

        if sets:
            with self._connect() as con:
                cur = con.execute(
                    f"UPDATE monitored_items SET {', '.join(sets)} WHERE id=?",
                    (*params, item_id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(f"Item {item_id} not found")

        item = self.get_item(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        return item

    def delete_item(self, item_id: str) -> None:
        with self._connect() as con:
            cur = con.execute("DELETE FROM monitored_items WHERE id=?", (item_id,))
            if cur.rowcount == 0:
                raise NotFoundError(f"Item {item_id} not found")
        logger.info("Deleted monitored item %s", item_id)

    # --- read models ------------------------------------------------------------

    def list_url_summaries(self) -> List[Dict[str, Any]]:
        """
        One row per url with its latest price, first item name and the
        distinct owner display names.
        """
        with self._connect() as con:
            urls = con.execute(
                "SELECT id, url, image_url, has_price_changed FROM urls ORDER BY rowid"
            ).fetchall()
            out: List[Dict[str, Any]] = []
            for u in urls:
                latest = con.execute(
                    "SELECT price_cents FROM price_history WHERE url_id=? "
                    "ORDER BY ts DESC, id DESC LIMIT 1",
                    (u["id"],),
                ).fetchone()
                items = con.execute(
                    "SELECT name, owner_name FROM monitored_items WHERE url_id=? ORDER BY rowid",
                    (u["id"],),
                ).fetchall()
                owner_names = list(
                    dict.fromkeys(r["owner_name"] for r in items if r["owner_name"])
                )
                out.append(
                    {
                        "id": u["id"],
                        "url": u["url"],
                        "image_url": u["image_url"],
                        "has_price_changed": bool(u["has_price_changed"]),
                        "item_name": items[0]["name"] if items else None,
                        "latest_price": from_cents(latest["price_cents"]) if latest else None,
                        "owner_names": owner_names,
                    }
                )
        return out
