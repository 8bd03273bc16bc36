import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, Index, Integer, Text, Uuid

from chatdesk.database import Base, JSONType, utcnow


class AutomationEvent(Base):
    __tablename__ = "automation_events"
    __table_args__ = (Index("ix_automation_events_pending", "status", "next_retry_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    event_type = Column(Text, nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    status = Column(Text, nullable=False, default="pending")  # pending, dispatched, delivered, failed
    attempts = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(TIMESTAMP(timezone=True))
    next_retry_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    processed_at = Column(TIMESTAMP(timezone=True))
    error = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
