"""Send a reply through the WhatsApp client and record it as an outbound message."""

from typing import Any, Optional

from sqlalchemy.orm import Session

from chatdesk.logging_config import get_logger
from chatdesk.models import Conversation, Customer
from chatdesk.services.conversation_service import is_window_open, on_outbound_message
from chatdesk.services.message_service import save_outbound_message
from chatdesk.services.quota_service import check_outbound_quota
from chatdesk.services.tenant_router import TenantRouteInfo
from chatdesk.services.usage_service import current_day, increment_usage
from chatdesk.services.whatsapp_client import (
    SendResult,
    WhatsAppClient,
    build_list_payload,
    build_product_payload,
    build_text_payload,
)

logger = get_logger("outbound_service")


def _deliver(
    db: Session,
    client: WhatsAppClient,
    route: TenantRouteInfo,
    conversation: Conversation,
    payload: dict[str, Any],
    *,
    body: str,
    message_type: str,
    sent_by: str,
    metadata: Optional[dict[str, Any]] = None,
) -> SendResult:
    if not is_window_open(conversation):
        result = SendResult(success=False, error="window_expired")
    else:
        quota = check_outbound_quota(db, conversation.tenant_id)
        if not quota.allowed:
            result = SendResult(success=False, error="outbound_quota_exceeded")
        else:
            result = client.send(route, payload)

    if result.success:
        increment_usage(db, conversation.tenant_id, "outbound")
        increment_usage(db, conversation.tenant_id, "outbound", period=current_day())
    else:
        logger.warning(
            "Outbound message not sent",
            extra={
                "context": {
                    "tenant_id": str(conversation.tenant_id),
                    "conversation_id": str(conversation.id),
                    "error": result.error,
                }
            },
        )

    record_metadata = dict(metadata or {})
    if result.error:
        record_metadata["error"] = result.error
    save_outbound_message(
        db,
        conversation,
        body=body,
        wa_message_id=result.wa_message_id,
        message_type=message_type,
        metadata=record_metadata,
        sent_by=sent_by,
        status="sent" if result.success else "failed",
    )
    on_outbound_message(conversation)
    return result


def send_text(
    db: Session,
    client: WhatsAppClient,
    route: TenantRouteInfo,
    conversation: Conversation,
    customer: Customer,
    body: str,
    *,
    sent_by: str = "bot",
    metadata: Optional[dict[str, Any]] = None,
) -> SendResult:
    return _deliver(
        db,
        client,
        route,
        conversation,
        build_text_payload(customer.wa_id, body),
        body=body,
        message_type="text",
        sent_by=sent_by,
        metadata=metadata,
    )


def send_list(
    db: Session,
    client: WhatsAppClient,
    route: TenantRouteInfo,
    conversation: Conversation,
    customer: Customer,
    *,
    body: str,
    button: str,
    sections: list[dict[str, Any]],
    header: Optional[str] = None,
) -> SendResult:
    payload = build_list_payload(customer.wa_id, body, button, sections, header)
    return _deliver(
        db,
        client,
        route,
        conversation,
        payload,
        body=body,
        message_type="interactive",
        sent_by="bot",
        metadata={"sections": payload["interactive"]["action"]["sections"]},
    )


def send_product(
    db: Session,
    client: WhatsAppClient,
    route: TenantRouteInfo,
    conversation: Conversation,
    customer: Customer,
    *,
    product_retailer_id: str,
    body: Optional[str] = None,
) -> SendResult:
    payload = build_product_payload(customer.wa_id, route.catalog_id, product_retailer_id, body)
    return _deliver(
        db,
        client,
        route,
        conversation,
        payload,
        body=body or product_retailer_id,
        message_type="product",
        sent_by="bot",
        metadata={"product_retailer_id": product_retailer_id, "catalog_id": route.catalog_id},
    )
