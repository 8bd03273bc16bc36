import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.orm import Session

from chatdesk.database import as_utc, dialect_insert
from chatdesk.logging_config import get_logger
from chatdesk.models import Conversation
from chatdesk.services.result import Result
from chatdesk.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    request_agent,
)

logger = get_logger("conversation_service")

MESSAGING_WINDOW = timedelta(hours=24)


def get_open_conversation(
    db: Session, tenant_id: UUID, customer_id: UUID, phone_number_id: str
) -> Optional[Conversation]:
    return (
        db.query(Conversation)
        .filter(
            Conversation.tenant_id == tenant_id,
            Conversation.customer_id == customer_id,
            Conversation.phone_number_id == phone_number_id,
            Conversation.status != ConversationStatus.CLOSED.value,
        )
        .first()
    )


def find_or_create_conversation(
    db: Session, tenant_id: UUID, customer_id: UUID, phone_number_id: str
) -> Conversation:
    """Return the single open conversation for (tenant, customer, channel), creating it if needed.

    Closed conversations are never reopened. The partial unique index on open
    conversations makes concurrent creation converge on one row.
    """
    conversation = get_open_conversation(db, tenant_id, customer_id, phone_number_id)
    if conversation is not None:
        return conversation

    now = datetime.now(timezone.utc)
    stmt = (
        dialect_insert(db, Conversation)
        .values(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            customer_id=customer_id,
            phone_number_id=phone_number_id,
            status=ConversationStatus.BOT.value,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(
            index_elements=["tenant_id", "customer_id", "phone_number_id"],
            index_where=text("status <> 'closed'"),
        )
    )
    db.execute(stmt)
    conversation = get_open_conversation(db, tenant_id, customer_id, phone_number_id)
    logger.info(
        "Conversation opened",
        extra={"context": {"tenant_id": str(tenant_id), "conversation_id": str(conversation.id)}},
    )
    return conversation


def on_inbound_message(conversation: Conversation, now: Optional[datetime] = None) -> None:
    """Inbound traffic extends the messaging window."""
    now = now or datetime.now(timezone.utc)
    conversation.last_inbound_at = now
    conversation.last_message_at = now
    conversation.window_expires_at = now + MESSAGING_WINDOW


def on_outbound_message(conversation: Conversation, now: Optional[datetime] = None) -> None:
    now = now or datetime.now(timezone.utc)
    conversation.last_outbound_at = now
    conversation.last_message_at = now


def is_window_open(conversation: Conversation, now: Optional[datetime] = None) -> bool:
    expires_at = as_utc(conversation.window_expires_at)
    if expires_at is None:
        return False
    return expires_at > (now or datetime.now(timezone.utc))


def set_needs_agent(db: Session, conversation: Conversation, reason: str) -> Result[str]:
    """Move a bot conversation to needs_agent. Already waiting for an agent is a no-op."""
    if conversation.status == ConversationStatus.NEEDS_AGENT.value:
        return Result.success(conversation.status)

    try:
        new_status = request_agent(ConversationStatus(conversation.status))
    except (InvalidTransitionError, ValueError) as e:
        return Result.failure(str(e), "invalid_state")

    conversation.status = new_status.value
    conversation.needs_agent_at = datetime.now(timezone.utc)
    db.flush()

    logger.info(
        "Conversation needs agent",
        extra={"context": {"conversation_id": str(conversation.id), "reason": reason}},
    )
    return Result.success(new_status.value)


def update_intent(conversation: Conversation, intent: str) -> None:
    conversation.last_intent = intent
