import uuid

from sqlalchemy import TIMESTAMP, Column, Index, Integer, Text, Uuid

from chatdesk.database import Base, JSONType, utcnow


class WebhookJob(Base):
    __tablename__ = "webhook_jobs"
    __table_args__ = (Index("ix_webhook_jobs_pending", "status", "next_attempt_at"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number_id = Column(Text)
    payload_json = Column(JSONType, nullable=False)
    status = Column(Text, nullable=False, default="PENDING")  # PENDING, PROCESSING, DONE, FAILED
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(TIMESTAMP(timezone=True))
    last_error = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
