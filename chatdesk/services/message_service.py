from typing import Any, Optional

from sqlalchemy.orm import Session

from chatdesk.models import Conversation, Message


def message_exists(db: Session, wa_message_id: Optional[str]) -> bool:
    """Idempotency guard: has this provider message id already been stored?"""
    if not wa_message_id:
        return False
    return db.query(Message.id).filter(Message.wa_message_id == wa_message_id).first() is not None


def save_inbound_message(
    db: Session,
    conversation: Conversation,
    *,
    wa_message_id: Optional[str],
    body: Optional[str],
    message_type: str = "text",
    metadata: Optional[dict[str, Any]] = None,
    intent: Optional[str] = None,
    confidence: Optional[float] = None,
) -> Message:
    message = Message(
        tenant_id=conversation.tenant_id,
        conversation_id=conversation.id,
        customer_id=conversation.customer_id,
        wa_message_id=wa_message_id,
        direction="inbound",
        type=message_type,
        body=body,
        message_metadata=metadata or {},
        intent=intent,
        confidence=confidence,
        status="received",
    )
    db.add(message)
    db.flush()
    return message


def save_outbound_message(
    db: Session,
    conversation: Conversation,
    *,
    body: Optional[str],
    wa_message_id: Optional[str],
    message_type: str = "text",
    metadata: Optional[dict[str, Any]] = None,
    sent_by: str = "bot",
    status: str = "sent",
) -> Message:
    message = Message(
        tenant_id=conversation.tenant_id,
        conversation_id=conversation.id,
        customer_id=conversation.customer_id,
        wa_message_id=wa_message_id,
        direction="outbound",
        type=message_type,
        body=body,
        message_metadata=metadata or {},
        sent_by=sent_by,
        status=status,
    )
    db.add(message)
    db.flush()
    return message


def attach_intent(message: Message, intent: str, confidence: float) -> None:
    message.intent = intent
    message.confidence = confidence


def get_recent_history(
    db: Session, conversation_id, *, limit: int = 3, exclude_id=None
) -> list[dict[str, str]]:
    """Last inbound turns of the conversation, oldest first, as chat-style dicts."""
    query = db.query(Message).filter(
        Message.conversation_id == conversation_id,
        Message.direction == "inbound",
        Message.body.isnot(None),
    )
    if exclude_id is not None:
        query = query.filter(Message.id != exclude_id)
    rows = query.order_by(Message.created_at.desc()).limit(limit).all()
    return [{"role": "user", "content": row.body} for row in reversed(rows)]


def get_last_inbound_text(db: Session, conversation_id) -> Optional[str]:
    row = (
        db.query(Message.body)
        .filter(
            Message.conversation_id == conversation_id,
            Message.direction == "inbound",
            Message.body.isnot(None),
        )
        .order_by(Message.created_at.desc())
        .first()
    )
    return row[0] if row else None
