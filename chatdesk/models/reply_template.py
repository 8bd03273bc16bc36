import uuid

from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Text, UniqueConstraint, Uuid

from chatdesk.database import Base, utcnow


class ReplyTemplate(Base):
    __tablename__ = "reply_templates"
    __table_args__ = (
        UniqueConstraint("tenant_id", "intent", "language", "tone", name="uq_reply_templates_key"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    intent = Column(Text, nullable=False)
    language = Column(Text, nullable=False, default="EN")  # EN, SI, TA
    tone = Column(Text, nullable=False, default="FRIENDLY")  # FRIENDLY, FORMAL, SHORT
    body = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
