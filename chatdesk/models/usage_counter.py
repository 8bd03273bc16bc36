import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, Integer, Text, UniqueConstraint, Uuid

from chatdesk.database import Base, utcnow


class UsageCounter(Base):
    __tablename__ = "usage_counters"
    __table_args__ = (UniqueConstraint("tenant_id", "period", name="uq_usage_counters_tenant_period"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    period = Column(Text, nullable=False)  # "YYYY-MM" monthly, "YYYY-MM-DD" daily
    inbound_messages_count = Column(Integer, nullable=False, default=0)
    outbound_messages_count = Column(Integer, nullable=False, default=0)
    automation_events_count = Column(Integer, nullable=False, default=0)
    ai_calls_count = Column(Integer, nullable=False, default=0)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
