from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from chatdesk.logging_config import get_logger
from chatdesk.models import Conversation, Customer
from chatdesk.services.outbound_service import send_text
from chatdesk.services.state_machine import (
    ConversationStatus,
    InvalidTransitionError,
    assign_agent,
    close,
    unassign_agent,
)
from chatdesk.services.tenant_router import TenantRouter
from chatdesk.services.whatsapp_client import SendResult, WhatsAppClient

logger = get_logger("agent_service")


class AgentAction(str, Enum):
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    CLOSE = "close"


class AgentActionError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def get_conversation_or_error(db: Session, conversation_id: UUID) -> Conversation:
    conversation = db.query(Conversation).filter(Conversation.id == conversation_id).first()
    if not conversation:
        raise AgentActionError(f"Conversation {conversation_id} not found", status_code=404)
    return conversation


def _current_status(conversation: Conversation) -> ConversationStatus:
    try:
        return ConversationStatus(conversation.status)
    except ValueError:
        raise AgentActionError(f"Conversation has unknown status '{conversation.status}'")


def handle_assign(db: Session, conversation: Conversation, agent_id: str) -> Tuple[str, str]:
    """Agent takes a conversation waiting in needs_agent."""
    old_status = _current_status(conversation)
    try:
        new_status = assign_agent(old_status)
    except InvalidTransitionError:
        raise AgentActionError(f"Cannot assign conversation in status '{old_status.value}'. Expected 'needs_agent'.")

    conversation.status = new_status.value
    conversation.assigned_agent_id = agent_id
    return old_status.value, new_status.value


def handle_unassign(db: Session, conversation: Conversation) -> Tuple[str, str]:
    """Agent releases the conversation back to the waiting queue."""
    old_status = _current_status(conversation)
    try:
        new_status = unassign_agent(old_status)
    except InvalidTransitionError:
        raise AgentActionError(f"Cannot unassign conversation in status '{old_status.value}'. Expected 'agent'.")

    conversation.status = new_status.value
    conversation.assigned_agent_id = None
    conversation.needs_agent_at = datetime.now(timezone.utc)
    return old_status.value, new_status.value


def handle_close(db: Session, conversation: Conversation) -> Tuple[str, str]:
    old_status = _current_status(conversation)
    try:
        new_status = close(old_status)
    except InvalidTransitionError:
        raise AgentActionError("Conversation is already closed.")

    conversation.status = new_status.value
    conversation.closed_at = datetime.now(timezone.utc)
    return old_status.value, new_status.value


def process_action(
    db: Session, conversation_id: UUID, action: AgentAction, agent_id: Optional[str] = None
) -> Tuple[str, str]:
    conversation = get_conversation_or_error(db, conversation_id)

    if action == AgentAction.ASSIGN:
        if not agent_id:
            raise AgentActionError("agent_id is required to assign")
        result = handle_assign(db, conversation, agent_id)
    elif action == AgentAction.UNASSIGN:
        result = handle_unassign(db, conversation)
    else:
        result = handle_close(db, conversation)

    logger.info(
        "Agent action applied",
        extra={
            "context": {
                "conversation_id": str(conversation_id),
                "action": action.value,
                "agent_id": agent_id,
                "old_status": result[0],
                "new_status": result[1],
            }
        },
    )
    return result


def send_agent_reply(
    db: Session,
    tenant_router: TenantRouter,
    client: WhatsAppClient,
    conversation_id: UUID,
    agent_id: str,
    text: str,
) -> SendResult:
    """Free-form reply typed by a human agent. Still bound by the messaging window."""
    conversation = get_conversation_or_error(db, conversation_id)
    if conversation.status == ConversationStatus.CLOSED.value:
        raise AgentActionError("Cannot reply to a closed conversation.")

    route = tenant_router.resolve(conversation.phone_number_id, db)
    if route is None or route.tenant_id != conversation.tenant_id:
        raise AgentActionError("Conversation channel is no longer active.", status_code=409)

    customer = db.query(Customer).filter(Customer.id == conversation.customer_id).first()
    if customer is None:
        raise AgentActionError("Conversation customer not found", status_code=404)
    if customer.opted_out:
        raise AgentActionError("Customer has opted out of messages.", status_code=409)

    return send_text(
        db,
        client,
        route,
        conversation,
        customer,
        text,
        sent_by="agent",
        metadata={"agent_id": agent_id},
    )
