"""Normalizes WhatsApp Cloud API webhook payloads into inbound message records."""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from chatdesk.logging_config import get_logger
from chatdesk.schemas.whatsapp import WAMessage, WebhookPayload

logger = get_logger("webhook_parser")

WHATSAPP_OBJECT = "whatsapp_business_account"
PHONE_NUMBER_ID_PATTERN = re.compile(r'"phone_number_id"\s*:\s*"([^"]+)"')


@dataclass(frozen=True)
class InteractiveSelection:
    type: str  # list_reply, button_reply
    id: str
    title: str
    description: Optional[str] = None


@dataclass
class InboundMessage:
    phone_number_id: str
    from_wa_id: str
    contact_name: str
    wa_message_id: str
    timestamp: datetime
    type: str
    text: Optional[str] = None
    interactive: Optional[InteractiveSelection] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def body(self) -> Optional[str]:
        """Text used for classification: typed text or the selected row title."""
        if self.text:
            return self.text
        if self.interactive is not None:
            return self.interactive.title
        return None


class PayloadParseError(Exception):
    pass


def extract_phone_number_id(raw_body: bytes) -> Optional[str]:
    """phone_number_id from the raw request body, before signature checks."""
    try:
        decoded = raw_body.decode("utf-8", errors="ignore")
    except AttributeError:
        decoded = str(raw_body)
    match = PHONE_NUMBER_ID_PATTERN.search(decoded)
    return match.group(1) if match else None


def _parse_timestamp(value: Optional[str]) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return datetime.now(timezone.utc)


def _interactive_selection(message: WAMessage) -> Optional[InteractiveSelection]:
    interactive = message.interactive
    if interactive is None:
        return None
    for kind in ("list_reply", "button_reply"):
        reply = getattr(interactive, kind)
        if reply is not None:
            return InteractiveSelection(type=kind, id=reply.id, title=reply.title, description=reply.description)
    return None


def parse_webhook_payload(payload: Any) -> list[InboundMessage]:
    """Flatten entries -> changes -> messages. Raises PayloadParseError on malformed shapes."""
    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            raise PayloadParseError(f"Invalid JSON: {e}") from e
    try:
        envelope = WebhookPayload.model_validate(payload)
    except ValidationError as e:
        raise PayloadParseError(str(e)) from e

    if envelope.object != WHATSAPP_OBJECT:
        logger.info("Ignoring non-WhatsApp webhook object", extra={"context": {"object": envelope.object}})
        return []

    messages: list[InboundMessage] = []
    for entry in envelope.entry:
        for change in entry.changes:
            if change.field != "messages" or change.value.metadata is None:
                continue
            value = change.value
            for message in value.messages:
                contact = next((c for c in value.contacts if c.wa_id == message.from_), None)
                if contact is None and value.contacts:
                    contact = value.contacts[0]
                name = contact.profile.name if contact and contact.profile and contact.profile.name else None

                messages.append(
                    InboundMessage(
                        phone_number_id=value.metadata.phone_number_id,
                        from_wa_id=message.from_,
                        contact_name=name or message.from_,
                        wa_message_id=message.id,
                        timestamp=_parse_timestamp(message.timestamp),
                        type=message.type,
                        text=message.text.body if message.text else None,
                        interactive=_interactive_selection(message),
                        raw=message.model_dump(by_alias=True, exclude_none=True),
                    )
                )
    return messages
