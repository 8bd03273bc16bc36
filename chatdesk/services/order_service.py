"""Order status replies for WhatsApp customers."""

from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from chatdesk.models import Order
from chatdesk.services.template_service import format_price

RECENT_ORDERS_LIMIT = 3
MAX_ITEMS_LISTED = 5

STATUS_EMOJI = {
    "pending": "⏳",
    "processing": "🔄",
    "shipped": "🚚",
    "delivered": "✅",
    "canceled": "❌",
    "cancelled": "❌",
    "refunded": "💰",
}

NO_ORDERS_REPLY = (
    "I couldn't find any orders for your number. Please reply with your order number "
    "(e.g. *ORD-2601-0001*) and I'll look it up for you."
)


def get_order_by_number(db: Session, tenant_id: UUID, order_number: str) -> Optional[Order]:
    return (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id, func.upper(Order.order_number) == order_number.upper())
        .first()
    )


def get_orders_by_phone(db: Session, tenant_id: UUID, phone: str, limit: int = RECENT_ORDERS_LIMIT) -> list[Order]:
    bare = phone.lstrip("+")
    return (
        db.query(Order)
        .filter(Order.tenant_id == tenant_id, Order.customer_phone.in_([bare, f"+{bare}"]))
        .order_by(Order.created_at.desc())
        .limit(limit)
        .all()
    )


def _date(value) -> str:
    return value.strftime("%d %b %Y") if value else ""


def format_order_status(order: Order) -> str:
    status = (order.status or "pending").lower()
    lines = [
        f"📦 *Order {order.order_number}*",
        f"{STATUS_EMOJI.get(status, '📦')} Status: *{status.capitalize()}*",
        f"📅 Placed: {_date(order.created_at)}",
        f"💰 Total: {order.currency or 'USD'} {format_price(order.total_amount or 0)}",
    ]

    items = list(order.items or [])
    if items:
        lines.append("")
        lines.append("*Items:*")
        for item in items[:MAX_ITEMS_LISTED]:
            lines.append(f"• {item.product_name} × {item.quantity}")
        if len(items) > MAX_ITEMS_LISTED:
            lines.append(f"…and {len(items) - MAX_ITEMS_LISTED} more")

    shipments = list(order.shipments or [])
    shipment = shipments[-1] if shipments else None
    if shipment is not None and (shipment.carrier or shipment.tracking_number):
        lines.append("")
        lines.append("*Shipping:*")
        if shipment.carrier:
            lines.append(f"Carrier: {shipment.carrier}")
        if shipment.tracking_number:
            lines.append(f"Tracking: {shipment.tracking_number}")
        if shipment.tracking_url:
            lines.append(f"Track here: {shipment.tracking_url}")
        if shipment.latest_update:
            lines.append(f"Latest update: {shipment.latest_update}")
        if shipment.shipped_at:
            lines.append(f"Shipped: {_date(shipment.shipped_at)}")
        if shipment.delivered_at:
            lines.append(f"Delivered: {_date(shipment.delivered_at)}")

    return "\n".join(lines).strip()


def format_order_summary(orders: list[Order]) -> str:
    lines = ["Here are your recent orders:", ""]
    for order in orders:
        status = (order.status or "pending").lower()
        emoji = {"delivered": "✅", "shipped": "🚚"}.get(status, "⏳")
        lines.append(
            f"{emoji} *{order.order_number}* — {status} — "
            f"{order.currency or 'USD'} {format_price(order.total_amount or 0)}"
        )
    lines.append("")
    lines.append("Reply with an order number for full details.")
    return "\n".join(lines)


def handle_order_status_inquiry(
    db: Session, tenant_id: UUID, customer_phone: str, order_number: Optional[str] = None
) -> tuple[str, bool]:
    """Reply text and whether any order was found."""
    if order_number:
        order = get_order_by_number(db, tenant_id, order_number)
        if order is None:
            return (
                f"Sorry, I couldn't find order *{order_number}*. Please check the order number and try again.",
                False,
            )
        return format_order_status(order), True

    orders = get_orders_by_phone(db, tenant_id, customer_phone)
    if not orders:
        return NO_ORDERS_REPLY, False
    if len(orders) == 1:
        return format_order_status(orders[0]), True
    return format_order_summary(orders), True
