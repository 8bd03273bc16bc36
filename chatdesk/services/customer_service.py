import uuid
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from chatdesk.database import dialect_insert
from chatdesk.models import Customer


def get_customer(db: Session, tenant_id: UUID, wa_id: str) -> Optional[Customer]:
    return db.query(Customer).filter(Customer.tenant_id == tenant_id, Customer.wa_id == wa_id).first()


def upsert_customer(db: Session, tenant_id: UUID, wa_id: str, name: Optional[str] = None) -> Customer:
    """Get customer by (tenant, wa_id) or create one. Refreshes the display name."""
    customer = get_customer(db, tenant_id, wa_id)

    if customer is None:
        now = datetime.now(timezone.utc)
        stmt = (
            dialect_insert(db, Customer)
            .values(
                id=uuid.uuid4(),
                tenant_id=tenant_id,
                wa_id=wa_id,
                name=name,
                phone=wa_id,
                opted_out=False,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["tenant_id", "wa_id"])
        )
        db.execute(stmt)
        return get_customer(db, tenant_id, wa_id)

    if name and customer.name != name:
        customer.name = name
        db.flush()
    return customer


def set_opted_out(db: Session, customer: Customer, opted_out: bool) -> Customer:
    customer.opted_out = opted_out
    customer.opt_out_at = datetime.now(timezone.utc) if opted_out else None
    db.flush()
    return customer
