from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.orm import Session

from chatdesk.logging_config import get_logger
from chatdesk.models import Conversation, SupportCase

logger = get_logger("case_service")

SLA_HOURS = {"urgent": 4, "high": 8, "medium": 24, "low": 48}
SUBJECT_PREVIEW_CHARS = 50


def get_sla_deadline(priority: str, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(hours=SLA_HOURS.get(priority, SLA_HOURS["medium"]))


def build_case_subject(last_inbound_text: Optional[str]) -> str:
    if not last_inbound_text:
        return "Customer support request"
    return f"Support request: {last_inbound_text[:SUBJECT_PREVIEW_CHARS]}..."


def create_case(
    db: Session,
    conversation: Conversation,
    *,
    subject: str,
    priority: str = "medium",
    tags: Optional[list[str]] = None,
) -> SupportCase:
    case = SupportCase(
        tenant_id=conversation.tenant_id,
        conversation_id=conversation.id,
        customer_id=conversation.customer_id,
        subject=subject,
        priority=priority,
        status="open",
        tags=tags or [],
        sla_deadline=get_sla_deadline(priority),
    )
    db.add(case)
    db.flush()
    logger.info(
        "Case created",
        extra={
            "context": {
                "tenant_id": str(conversation.tenant_id),
                "case_id": str(case.id),
                "priority": priority,
            }
        },
    )
    return case
