"""Durable automation events and their delivery state machine.

pending -> dispatched -> delivered
pending -> pending (attempts + 1, rescheduled by BACKOFF_MINUTES)
pending -> failed once attempts reach MAX_ATTEMPTS
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from chatdesk.logging_config import get_logger
from chatdesk.models import AutomationEvent
from chatdesk.services.quota_service import check_automation_enabled
from chatdesk.services.usage_service import increment_usage

logger = get_logger("automation_service")

MAX_ATTEMPTS = 5
BACKOFF_MINUTES = (1, 5, 15, 30, 60)
DEFAULT_CALLBACK_ERROR = "Failed in n8n workflow"


class AutomationEventType(str, Enum):
    CASE_CREATED = "case.created"
    HIGH_PRIORITY_CASE = "case.high_priority"
    CUSTOMER_OPTED_OUT = "customer.opted_out"
    INBOUND_QUOTA_EXCEEDED = "quota.inbound_exceeded"


class AutomationEventStatus(str, Enum):
    PENDING = "pending"
    DISPATCHED = "dispatched"
    DELIVERED = "delivered"
    FAILED = "failed"


TERMINAL_STATUSES = {AutomationEventStatus.DELIVERED.value, AutomationEventStatus.FAILED.value}


def backoff_delay(attempts: int) -> timedelta:
    """Retry delay after the given number of failed attempts (1-based)."""
    index = min(max(attempts, 1) - 1, len(BACKOFF_MINUTES) - 1)
    return timedelta(minutes=BACKOFF_MINUTES[index])


def create_automation_event(
    db: Session,
    tenant_id: UUID,
    event_type: AutomationEventType,
    payload: dict[str, Any],
) -> Optional[AutomationEvent]:
    """Queue an event for the dispatcher. Returns None when the plan has automation disabled."""
    if not check_automation_enabled(db, tenant_id):
        logger.warning(
            "Automation event skipped, feature not enabled on current plan",
            extra={"context": {"tenant_id": str(tenant_id), "event_type": event_type.value}},
        )
        return None

    event = AutomationEvent(
        tenant_id=tenant_id,
        event_type=event_type.value,
        payload=payload,
        status=AutomationEventStatus.PENDING.value,
        attempts=0,
        next_retry_at=datetime.now(timezone.utc),
    )
    db.add(event)
    db.flush()
    increment_usage(db, tenant_id, "automation")

    logger.info(
        "Automation event created",
        extra={"context": {"event_id": str(event.id), "event_type": event_type.value, "tenant_id": str(tenant_id)}},
    )
    return event


def get_event(db: Session, event_id: UUID) -> Optional[AutomationEvent]:
    return db.query(AutomationEvent).filter(AutomationEvent.id == event_id).first()


def get_pending_events(db: Session, limit: int = 50, now: Optional[datetime] = None) -> list[AutomationEvent]:
    now = now or datetime.now(timezone.utc)
    return (
        db.query(AutomationEvent)
        .filter(
            AutomationEvent.status == AutomationEventStatus.PENDING.value,
            or_(AutomationEvent.next_retry_at.is_(None), AutomationEvent.next_retry_at <= now),
            AutomationEvent.attempts < MAX_ATTEMPTS,
        )
        .order_by(AutomationEvent.created_at.asc())
        .limit(limit)
        .all()
    )


def mark_dispatched(db: Session, event_id: UUID) -> Optional[AutomationEvent]:
    event = get_event(db, event_id)
    if event is None:
        return None
    now = datetime.now(timezone.utc)
    event.status = AutomationEventStatus.DISPATCHED.value
    event.processed_at = now
    event.last_attempt_at = now
    event.next_retry_at = None
    event.error = None
    db.flush()
    return event


def mark_delivered(db: Session, event_id: UUID) -> Optional[AutomationEvent]:
    event = get_event(db, event_id)
    if event is None:
        return None
    event.status = AutomationEventStatus.DELIVERED.value
    event.processed_at = datetime.now(timezone.utc)
    event.next_retry_at = None
    db.flush()
    return event


def mark_failed(
    db: Session, event_id: UUID, error: Optional[str], now: Optional[datetime] = None
) -> Optional[AutomationEvent]:
    """Record a failed delivery attempt and schedule the retry, or fail terminally."""
    event = get_event(db, event_id)
    if event is None:
        return None
    if event.status in TERMINAL_STATUSES:
        return event

    now = now or datetime.now(timezone.utc)
    event.attempts = (event.attempts or 0) + 1
    event.last_attempt_at = now
    event.error = (error or DEFAULT_CALLBACK_ERROR)[:2000]

    if event.attempts >= MAX_ATTEMPTS:
        event.status = AutomationEventStatus.FAILED.value
        event.next_retry_at = None
        logger.error(
            "Automation event failed permanently",
            extra={"context": {"event_id": str(event.id), "attempts": event.attempts, "error": event.error}},
        )
    else:
        event.status = AutomationEventStatus.PENDING.value
        event.next_retry_at = now + backoff_delay(event.attempts)
        logger.warning(
            "Automation event delivery failed, retry scheduled",
            extra={
                "context": {
                    "event_id": str(event.id),
                    "attempts": event.attempts,
                    "next_retry_at": event.next_retry_at.isoformat(),
                }
            },
        )
    db.flush()
    return event
