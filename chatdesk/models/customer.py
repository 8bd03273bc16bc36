import uuid

from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Text, UniqueConstraint, Uuid

from chatdesk.database import Base, utcnow


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("tenant_id", "wa_id", name="uq_customers_tenant_wa_id"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    wa_id = Column(Text, nullable=False)
    name = Column(Text)
    phone = Column(Text)
    opted_out = Column(Boolean, nullable=False, default=False)
    opt_out_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
