# core/report.py
from pathlib import Path
from typing import List

from jinja2 import Environment, FileSystemLoader

from .models import AlertPayload, format_money

# Resolve template directory relative to this file
TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"
env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)), autoescape=False)

# Discord rejects message content longer than this
MAX_MESSAGE_LENGTH = 2000


def format_mentions(recipients: List[str]) -> str:
    return " ".join(f"<@{r}>" for r in recipients)


def build_alert_message(payload: AlertPayload, recipients: List[str]) -> str:
    template = env.get_template("alert_message.txt")
    ctx = {
        "mentions": format_mentions(recipients),
        "item_name": payload.item_name,
        "condition": payload.condition or "Unknown",
        "base_price": format_money(payload.base_price),
        "total_price": format_money(payload.total_price),
        "threshold": format_money(payload.threshold),
        "url": payload.url,
    }
    text = template.render(**ctx)
    if len(text) > MAX_MESSAGE_LENGTH:
        text = text[: MAX_MESSAGE_LENGTH - 3] + "..."
    return text
