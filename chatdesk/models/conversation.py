import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, Index, Text, Uuid, text
from sqlalchemy.orm import relationship

from chatdesk.database import Base, utcnow


class Conversation(Base):
    __tablename__ = "conversations"
    __table_args__ = (
        # at most one non-closed conversation per (tenant, customer, channel)
        Index(
            "uq_conversations_open",
            "tenant_id",
            "customer_id",
            "phone_number_id",
            unique=True,
            postgresql_where=text("status <> 'closed'"),
            sqlite_where=text("status <> 'closed'"),
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False)
    phone_number_id = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="bot")  # bot, needs_agent, agent, closed
    assigned_agent_id = Column(Text)
    language = Column(Text)
    last_intent = Column(Text)
    last_message_at = Column(TIMESTAMP(timezone=True))
    last_inbound_at = Column(TIMESTAMP(timezone=True))
    last_outbound_at = Column(TIMESTAMP(timezone=True))
    window_expires_at = Column(TIMESTAMP(timezone=True))
    needs_agent_at = Column(TIMESTAMP(timezone=True))
    closed_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    customer = relationship("Customer")
    messages = relationship("Message", back_populates="conversation")
