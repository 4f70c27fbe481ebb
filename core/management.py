# core/management.py
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from .logger import get_logger
from .models import Condition, MonitoredItem, PriceHistoryEntry
from .sessions import EditSessionStore
from .storage import NotFoundError

logger = get_logger(__name__)

MAX_NAME_LENGTH = 45
MAX_THRESHOLD = Decimal("1000000000")
EDITABLE_FIELDS = ("name", "url", "threshold", "condition", "is_foil", "seller_verified")

_TRUE = ("1", "true", "yes", "y", "on")
_FALSE = ("0", "false", "no", "n", "off")


class ValidationError(ValueError):
    """User input was rejected before anything was written."""


class PermissionDeniedError(Exception):
    """The acting user may not change this item."""


# --- input validation ---------------------------------------------------------

def validate_name(name: Any) -> str:
    text = str(name or "").strip()
    if not text:
        raise ValidationError("Item name cannot be empty.")
    if len(text) > MAX_NAME_LENGTH:
        raise ValidationError(f"Item name must be at most {MAX_NAME_LENGTH} characters.")
    return text


def validate_url(url: Any) -> str:
    text = str(url or "").strip()
    if not text:
        raise ValidationError("URL cannot be empty.")
    parsed = urlparse(text)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"'{text}' is not a valid http(s) URL.")
    return text


def validate_threshold(value: Any) -> Decimal:
    try:
        threshold = Decimal(str(value).strip().lstrip("$").replace(",", ""))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Threshold '{value}' is not a number.")
    if not threshold.is_finite():
        raise ValidationError(f"Threshold '{value}' is not a number.")
    if threshold < 0:
        raise ValidationError("Threshold cannot be negative.")
    if threshold > MAX_THRESHOLD:
        raise ValidationError(f"Threshold cannot exceed {MAX_THRESHOLD:,}.")
    try:
        return threshold.quantize(Decimal("0.01"))
    except InvalidOperation:
        raise ValidationError(f"Threshold '{value}' is not a valid amount.")


def _condition_key(text: str) -> str:
    return re.sub(r"[\s_\-]+", "", text).lower()


_CONDITION_LOOKUP = {}
for _c in Condition:
    _CONDITION_LOOKUP[_condition_key(_c.value)] = _c
    _CONDITION_LOOKUP[_condition_key(_c.label)] = _c
    _CONDITION_LOOKUP[_condition_key(_c.name)] = _c


def validate_condition(value: Any) -> Condition:
    """Accepts the stored value, the display label or the enum name, in any case."""
    if isinstance(value, Condition):
        return value
    condition = _CONDITION_LOOKUP.get(_condition_key(str(value or "")))
    if condition is None:
        choices = ", ".join(c.value for c in Condition)
        raise ValidationError(f"Unknown condition '{value}'. Choose one of: {choices}.")
    return condition


def validate_flag(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValidationError(f"'{value}' is not a valid value for {name} (use true or false).")


_FIELD_VALIDATORS = {
    "name": validate_name,
    "url": validate_url,
    "threshold": validate_threshold,
    "condition": validate_condition,
    "is_foil": lambda v: validate_flag(v, "is_foil"),
    "seller_verified": lambda v: validate_flag(v, "seller_verified"),
}


class ManagementService:
    """
    Item management on behalf of an acting user.

    Owners may change or remove only their own items; ids listed in
    `admin_ids` may act on every item. All input is validated before the
    store is touched.
    """

    def __init__(self, store, sessions: EditSessionStore, admin_ids: Iterable[str] = ()):
        self.store = store
        self.sessions = sessions
        self.admin_ids = set(admin_ids)

    def is_admin(self, actor_id: str) -> bool:
        return actor_id in self.admin_ids

    def _owned_item(self, item_id: str, actor_id: str) -> MonitoredItem:
        item = self.store.get_item(item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        if item.owner_id != actor_id and not self.is_admin(actor_id):
            logger.warning("User %s denied access to item %s", actor_id, item_id)
            raise PermissionDeniedError("You can only modify items you created.")
        return item

    # --- items --------------------------------------------------------------

    def add_item(
        self,
        name: str,
        url: str,
        threshold: Any,
        condition: Any,
        owner_id: str,
        owner_name: Optional[str] = None,
        is_foil: Any = False,
        seller_verified: Any = False,
    ) -> MonitoredItem:
        name = validate_name(name)
        url = validate_url(url)
        threshold = validate_threshold(threshold)
        condition = validate_condition(condition)
        is_foil = validate_flag(is_foil, "is_foil")
        seller_verified = validate_flag(seller_verified, "seller_verified")
        if not str(owner_id or "").strip():
            raise ValidationError("Owner id cannot be empty.")

        record = self.store.get_or_create_url(url)
        item = self.store.create_item(
            name=name,
            url_id=record.id,
            threshold=threshold,
            condition=condition,
            owner_id=owner_id,
            owner_name=owner_name,
            is_foil=is_foil,
            seller_verified=seller_verified,
        )
        logger.info("User %s added item %s (%s) at %s", owner_id, item.id, name, url)
        return item

    def list_items(self, actor_id: str) -> List[MonitoredItem]:
        if self.is_admin(actor_id):
            return self.store.list_monitored_items()
        return self.store.list_items_for_owner(actor_id)

    def delete_item(self, item_id: str, actor_id: str) -> MonitoredItem:
        item = self._owned_item(item_id, actor_id)
        self.store.delete_item(item_id)
        logger.info("User %s deleted item %s (%s)", actor_id, item_id, item.name)
        return item

    # --- interactive edits ------------------------------------------------------

    def begin_edit(self, item_id: str, actor_id: str) -> str:
        self._owned_item(item_id, actor_id)
        return self.sessions.open(item_id, actor_id).id

    def set_edit_field(self, session_id: str, field: str, value: Any) -> Dict[str, Any]:
        """Validate one field and stage it. Returns all staged changes."""
        if field not in _FIELD_VALIDATORS:
            raise ValidationError(
                f"Field '{field}' cannot be edited. Editable: {', '.join(EDITABLE_FIELDS)}."
            )
        cleaned = _FIELD_VALIDATORS[field](value)
        session = self.sessions.update(session_id, field, cleaned)
        return dict(session.changes)

    def commit_edit(self, session_id: str, actor_id: str) -> Optional[MonitoredItem]:
        session = self.sessions.get(session_id)
        if session.actor_id != actor_id and not self.is_admin(actor_id):
            raise PermissionDeniedError("This edit belongs to another user.")
        # Ownership may have changed since the session was opened
        self._owned_item(session.item_id, actor_id)

        changes = dict(session.changes)
        self.sessions.close(session_id)
        if not changes:
            logger.info("Edit session %s closed with no changes", session_id)
            return None

        if "url" in changes:
            changes["url_id"] = self.store.get_or_create_url(changes.pop("url")).id
        item = self.store.update_item(session.item_id, **changes)
        logger.info(
            "User %s updated item %s: %s", actor_id, item.id, ", ".join(sorted(changes))
        )
        return item

    def cancel_edit(self, session_id: str) -> None:
        self.sessions.close(session_id)

    # --- urls and history -------------------------------------------------------

    def acknowledge_price_change(self, url_id: str) -> None:
        self.store.set_has_price_changed(url_id, False)
        logger.info("Price change acknowledged for url %s", url_id)

    def price_history(self, url: str) -> List[PriceHistoryEntry]:
        record = self.store.get_url_by_string(str(url or "").strip())
        if record is None:
            raise NotFoundError(f"No monitored url {url}")
        return self.store.get_price_history(record.id)

    def url_summaries(self) -> List[Dict[str, Any]]:
        return self.store.list_url_summaries()
