import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, Text, Uuid

from chatdesk.database import Base, JSONType, utcnow


class SupportCase(Base):
    __tablename__ = "cases"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customers.id"))
    subject = Column(Text, nullable=False)
    priority = Column(Text, nullable=False, default="medium")  # low, medium, high, urgent
    status = Column(Text, nullable=False, default="open")
    tags = Column(JSONType, default=list)
    assigned_agent_id = Column(Text)
    sla_deadline = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
