"""WhatsApp Cloud API (Graph) send client."""

from dataclasses import dataclass
from typing import Any, Optional

import httpx

from chatdesk.config import settings
from chatdesk.logging_config import get_logger
from chatdesk.services.alert_service import alert_critical
from chatdesk.services.tenant_router import TenantRouteInfo

logger = get_logger("whatsapp_client")

# Channel limits for interactive lists
LIST_MAX_SECTIONS = 10
LIST_MAX_ROWS = 10
LIST_SECTION_TITLE_MAX = 24
LIST_ROW_TITLE_MAX = 24
LIST_ROW_DESCRIPTION_MAX = 72
LIST_ROW_ID_MAX = 200
LIST_BUTTON_MAX = 20
TEXT_BODY_MAX = 4096


@dataclass
class SendResult:
    success: bool
    wa_message_id: Optional[str] = None
    error: Optional[str] = None


def build_text_payload(to: str, body: str) -> dict[str, Any]:
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": "text",
        "text": {"preview_url": False, "body": body[:TEXT_BODY_MAX]},
    }


def build_list_payload(
    to: str,
    body: str,
    button: str,
    sections: list[dict[str, Any]],
    header: Optional[str] = None,
) -> dict[str, Any]:
    """Interactive list message. Titles, descriptions and counts are capped to channel limits."""
    capped_sections = []
    rows_left = LIST_MAX_ROWS
    for section in sections[:LIST_MAX_SECTIONS]:
        rows = []
        for row in section.get("rows", [])[:rows_left]:
            capped = {"id": str(row["id"])[:LIST_ROW_ID_MAX], "title": str(row["title"])[:LIST_ROW_TITLE_MAX]}
            if row.get("description"):
                capped["description"] = str(row["description"])[:LIST_ROW_DESCRIPTION_MAX]
            rows.append(capped)
        if not rows:
            continue
        rows_left -= len(rows)
        capped_sections.append({"title": str(section.get("title", ""))[:LIST_SECTION_TITLE_MAX], "rows": rows})

    interactive: dict[str, Any] = {
        "type": "list",
        "body": {"text": body[:1024]},
        "action": {"button": button[:LIST_BUTTON_MAX], "sections": capped_sections},
    }
    if header:
        interactive["header"] = {"type": "text", "text": header[:60]}
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": "interactive",
        "interactive": interactive,
    }


def build_product_payload(to: str, catalog_id: str, product_retailer_id: str, body: Optional[str] = None) -> dict:
    interactive: dict[str, Any] = {
        "type": "product",
        "action": {"catalog_id": catalog_id, "product_retailer_id": product_retailer_id},
    }
    if body:
        interactive["body"] = {"text": body[:1024]}
    return {
        "messaging_product": "whatsapp",
        "recipient_type": "individual",
        "to": to,
        "type": "interactive",
        "interactive": interactive,
    }


class WhatsAppClient:
    """Posts message payloads to the Graph API on behalf of a tenant number.

    Never raises: every outcome is a SendResult.
    """

    def __init__(self, http_client: Optional[httpx.Client] = None):
        self._http_client = http_client

    def _url(self, phone_number_id: str) -> str:
        base = settings.graph_api_base_url.rstrip("/")
        return f"{base}/{settings.graph_api_version}/{phone_number_id}/messages"

    def send(self, route: TenantRouteInfo, payload: dict[str, Any]) -> SendResult:
        if not route.access_token:
            logger.error(
                "WhatsApp access token missing for tenant",
                extra={"context": {"tenant_id": str(route.tenant_id), "phone_number_id": route.phone_number_id}},
            )
            alert_critical(
                "WhatsApp send failed", {"tenant_id": str(route.tenant_id), "error": "missing_access_token"}
            )
            return SendResult(success=False, error="missing_access_token")

        headers = {"Authorization": f"Bearer {route.access_token}", "Content-Type": "application/json"}
        try:
            if self._http_client is not None:
                response = self._http_client.post(self._url(route.phone_number_id), headers=headers, json=payload)
            else:
                with httpx.Client(timeout=settings.whatsapp_request_timeout_seconds) as client:
                    response = client.post(self._url(route.phone_number_id), headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(
                f"WhatsApp send error: {e}",
                extra={"context": {"tenant_id": str(route.tenant_id), "type": payload.get("type")}},
            )
            return SendResult(success=False, error=str(e) or e.__class__.__name__)

        if not response.is_success:
            logger.warning(
                "WhatsApp send rejected",
                extra={
                    "context": {
                        "tenant_id": str(route.tenant_id),
                        "status_code": response.status_code,
                        "body": response.text[:300],
                    }
                },
            )
            return SendResult(success=False, error=f"graph_api_{response.status_code}")

        try:
            wa_message_id = response.json()["messages"][0]["id"]
        except (ValueError, KeyError, IndexError, TypeError):
            wa_message_id = None
        return SendResult(success=True, wa_message_id=wa_message_id)
