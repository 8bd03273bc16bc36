import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from chatdesk.models import ReplyTemplate
from chatdesk.services.language_service import DEFAULT_LANGUAGE
from chatdesk.services.policy_service import TenantPolicySnapshot


class Tone(str, Enum):
    FRIENDLY = "FRIENDLY"
    FORMAL = "FORMAL"
    SHORT = "SHORT"


DEFAULT_TONE = Tone.FRIENDLY

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}")

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_VARIABLES = {
    "customer_name": "there",
    "currency": "USD",
    "agent_name": "our team",
    "unsubscribe_text": "Reply STOP to unsubscribe.",
}


def template_fallback_chain(language: str, tone: str) -> list[tuple[str, str]]:
    """(language, tone) candidates in lookup order, without duplicates."""
    candidates = [
        (language, tone),
        (DEFAULT_LANGUAGE.value, tone),
        (language, DEFAULT_TONE.value),
        (DEFAULT_LANGUAGE.value, DEFAULT_TONE.value),
    ]
    chain: list[tuple[str, str]] = []
    for candidate in candidates:
        if candidate not in chain:
            chain.append(candidate)
    return chain


def resolve_template(
    db: Session, tenant_id: UUID, intent: str, language: str, tone: str
) -> Optional[ReplyTemplate]:
    templates = (
        db.query(ReplyTemplate)
        .filter(
            ReplyTemplate.tenant_id == tenant_id,
            ReplyTemplate.intent == intent,
            ReplyTemplate.is_active.is_(True),
        )
        .all()
    )
    by_key = {(t.language, t.tone): t for t in templates}
    for key in template_fallback_chain(language, tone):
        if key in by_key:
            return by_key[key]
    return None


def render_template(body: str, variables: dict[str, Any]) -> str:
    """Substitute {{name}} placeholders. Unknown or empty names render as ''."""

    def _replace(match: re.Match) -> str:
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_replace, body or "")


def format_business_hours(hours: Optional[dict]) -> str:
    if not hours:
        return ""
    lines = []
    for day in WEEKDAYS:
        if day not in hours:
            continue
        slot = hours.get(day)
        if not slot or slot == "closed" or (isinstance(slot, dict) and slot.get("closed")):
            lines.append(f"{day.capitalize()}: Closed")
        elif isinstance(slot, dict):
            lines.append(f"{day.capitalize()}: {slot.get('open', '')}–{slot.get('close', '')}")
        else:
            lines.append(f"{day.capitalize()}: {slot}")
    return ", ".join(lines)


def _local_now(tz_name: Optional[str], now: Optional[datetime]) -> datetime:
    now = now or datetime.now(timezone.utc)
    try:
        return now.astimezone(ZoneInfo(tz_name or "UTC"))
    except (ZoneInfoNotFoundError, ValueError):
        return now.astimezone(timezone.utc)


def format_price(price: Any) -> str:
    if price is None:
        return ""
    return f"{float(price):,.2f}"


def build_template_variables(
    policies: TenantPolicySnapshot,
    *,
    customer_name: Optional[str] = None,
    product=None,
    order_id: Optional[str] = None,
    agent_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, str]:
    local_now = _local_now(policies.timezone, now)
    variables = dict(DEFAULT_VARIABLES)
    variables.update(
        {
            "business_name": policies.business_name or "",
            "currency": policies.currency or DEFAULT_VARIABLES["currency"],
            "hours": format_business_hours(policies.business_hours),
            "location": policies.location or "",
            "shipping_policy": policies.shipping_policy or "",
            "returns_policy": policies.return_policy or "",
            "today_date": local_now.strftime("%Y-%m-%d"),
            "today_time": local_now.strftime("%H:%M"),
        }
    )
    if customer_name:
        variables["customer_name"] = customer_name
    if agent_name:
        variables["agent_name"] = agent_name
    if order_id:
        variables["order_id"] = order_id
    if product is not None:
        variables["product_name"] = product.name
        variables["price"] = format_price(product.price)
        variables["currency"] = product.currency or variables["currency"]
        variables["stock"] = "In Stock" if product.in_stock else "Out of Stock"
    return variables
