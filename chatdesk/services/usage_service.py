"""Per-tenant usage counters, one row per (tenant, period)."""

import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from chatdesk.database import dialect_insert
from chatdesk.models import UsageCounter

USAGE_FIELDS = {
    "inbound": "inbound_messages_count",
    "outbound": "outbound_messages_count",
    "automation": "automation_events_count",
    "ai_calls": "ai_calls_count",
}


def current_period(now: Optional[datetime] = None) -> str:
    """Monthly period key, e.g. 2026-10."""
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m")


def current_day(now: Optional[datetime] = None) -> str:
    """Daily period key, e.g. 2026-10-19."""
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")


def increment_usage(
    db: Session,
    tenant_id: UUID,
    field: str,
    amount: int = 1,
    *,
    period: Optional[str] = None,
) -> None:
    """Atomically add to a counter, creating the period row if it does not exist yet."""
    column_name = USAGE_FIELDS[field]
    period = period or current_period()
    now = datetime.now(timezone.utc)
    column = UsageCounter.__table__.c[column_name]

    stmt = dialect_insert(db, UsageCounter).values(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        period=period,
        created_at=now,
        updated_at=now,
        **{column_name: amount},
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["tenant_id", "period"],
        set_={column_name: column + amount, "updated_at": now},
    )
    db.execute(stmt)


def get_usage(db: Session, tenant_id: UUID, period: Optional[str] = None) -> dict[str, int]:
    period = period or current_period()
    # counters change through Core upserts, so refresh any instance already in the session
    counter = (
        db.query(UsageCounter)
        .populate_existing()
        .filter(UsageCounter.tenant_id == tenant_id, UsageCounter.period == period)
        .first()
    )
    if counter is None:
        return {field: 0 for field in USAGE_FIELDS}
    return {field: getattr(counter, column) or 0 for field, column in USAGE_FIELDS.items()}
