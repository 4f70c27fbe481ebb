import argparse
import sys
from typing import List, Optional

from core.config import Settings
from core.logger import get_logger
from core.management import ManagementService, PermissionDeniedError, ValidationError
from core.models import MonitoredItem, format_money
from core.sessions import EditSessionStore, SessionExpiredError
from core.storage import CatalogStore, DuplicateUrlError, NotFoundError, StorageError

logger = get_logger(__name__)


def _item_line(item: MonitoredItem) -> str:
    flags = []
    if item.is_foil:
        flags.append("foil")
    if item.seller_verified:
        flags.append("verified sellers")
    extra = f" [{', '.join(flags)}]" if flags else ""
    return (
        f"{item.id}  {item.name}  {item.condition.label}{extra}  "
        f"below {format_money(item.threshold)}  owner={item.owner_name or item.owner_id}  {item.url}"
    )


def cmd_add(service: ManagementService, args) -> int:
    item = service.add_item(
        name=args.name,
        url=args.url,
        threshold=args.threshold,
        condition=args.condition,
        owner_id=args.owner,
        owner_name=args.owner_name,
        is_foil=args.foil,
        seller_verified=args.seller_verified,
    )
    print(f"Now monitoring {item.name} (id {item.id}).")
    return 0


def cmd_list(service: ManagementService, args) -> int:
    items = service.list_items(args.actor)
    if not items:
        print("No monitored items.")
        return 0
    for item in items:
        print(_item_line(item))
    return 0


def cmd_update(service: ManagementService, args) -> int:
    session_id = service.begin_edit(args.item_id, args.actor)
    try:
        for assignment in args.set or []:
            field, sep, value = assignment.partition("=")
            if not sep:
                raise ValidationError(f"Expected field=value, got '{assignment}'.")
            service.set_edit_field(session_id, field.strip(), value)
        item = service.commit_edit(session_id, args.actor)
    finally:
        service.cancel_edit(session_id)

    if item is None:
        print("Nothing to update.")
    else:
        print("Updated: " + _item_line(item))
    return 0


def cmd_delete(service: ManagementService, args) -> int:
    item = service.delete_item(args.item_id, args.actor)
    print(f"Stopped monitoring {item.name}.")
    return 0


def cmd_ack(service: ManagementService, args) -> int:
    service.acknowledge_price_change(args.url_id)
    print("Price change acknowledged.")
    return 0


def cmd_history(service: ManagementService, args) -> int:
    entries = service.price_history(args.url)
    if not entries:
        print("No price history yet.")
        return 0
    for entry in entries:
        print(f"{entry.timestamp.isoformat()}  {format_money(entry.price)}")
    return 0


def cmd_urls(service: ManagementService, args) -> int:
    summaries = service.url_summaries()
    if not summaries:
        print("No monitored urls.")
        return 0
    for s in summaries:
        marker = "*" if s["has_price_changed"] else " "
        owners = ", ".join(s["owner_names"]) or "-"
        print(
            f"{marker} {s['id']}  {format_money(s['latest_price'])}  "
            f"{s['item_name'] or '-'}  ({owners})  {s['url']}"
        )
    return 0


def cmd_init_db(service: ManagementService, args) -> int:
    service.store.ensure_db()
    print(f"Database ready at {service.store.db_path}.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage monitored marketplace items")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add", help="start monitoring a product page")
    p.add_argument("--name", required=True)
    p.add_argument("--url", required=True)
    p.add_argument("--threshold", required=True)
    p.add_argument("--condition", required=True)
    p.add_argument("--owner", required=True, help="owner id used for mentions")
    p.add_argument("--owner-name")
    p.add_argument("--foil", action="store_true")
    p.add_argument("--seller-verified", action="store_true")
    p.set_defaults(func=cmd_add)

    p = sub.add_parser("list", help="list items visible to a user")
    p.add_argument("--actor", required=True)
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("update", help="change fields of an item")
    p.add_argument("item_id")
    p.add_argument("--actor", required=True)
    p.add_argument("--set", action="append", metavar="FIELD=VALUE")
    p.set_defaults(func=cmd_update)

    p = sub.add_parser("delete", help="stop monitoring an item")
    p.add_argument("item_id")
    p.add_argument("--actor", required=True)
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("ack", help="clear the price changed flag of a url")
    p.add_argument("url_id")
    p.set_defaults(func=cmd_ack)

    p = sub.add_parser("history", help="show the price history of a url")
    p.add_argument("url")
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("urls", help="summarize every monitored url")
    p.set_defaults(func=cmd_urls)

    p = sub.add_parser("init-db", help="create the database schema")
    p.set_defaults(func=cmd_init_db)

    return parser


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = settings or Settings.from_env()
    store = CatalogStore(settings.db_path)
    service = ManagementService(
        store,
        EditSessionStore(ttl_seconds=settings.session_ttl_seconds),
        admin_ids=settings.admin_ids,
    )

    try:
        store.ensure_db()
        return args.func(service, args)
    except DuplicateUrlError:
        print("That item is already monitored.", file=sys.stderr)
    except ValidationError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
    except PermissionDeniedError as e:
        print(f"Permission denied: {e}", file=sys.stderr)
    except NotFoundError as e:
        print(f"Not found: {e}", file=sys.stderr)
    except SessionExpiredError as e:
        print(f"Edit expired: {e}", file=sys.stderr)
    except StorageError as e:
        logger.error("Storage failure running '%s': %s", args.command, e)
        print(f"Storage error: {e}", file=sys.stderr)
        return 2
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
