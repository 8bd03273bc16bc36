import uuid

from sqlalchemy import TIMESTAMP, Column, Float, ForeignKey, Text, Uuid
from sqlalchemy.orm import relationship

from chatdesk.database import Base, JSONType, utcnow


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False)
    wa_message_id = Column(Text, unique=True)  # idempotency key for inbound
    direction = Column(Text, nullable=False)  # inbound, outbound
    type = Column(Text, nullable=False, default="text")
    body = Column(Text)
    message_metadata = Column("metadata", JSONType, default=dict)
    intent = Column(Text)
    confidence = Column(Float)
    sent_by = Column(Text)  # bot, agent, system
    status = Column(Text)  # received, sent, failed
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    conversation = relationship("Conversation", back_populates="messages")
