import uuid

from sqlalchemy import TIMESTAMP, Column, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from chatdesk.database import Base, utcnow


class Order(Base):
    __tablename__ = "orders"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customers.id"))
    order_number = Column(Text, nullable=False)
    customer_phone = Column(Text)
    status = Column(Text, nullable=False, default="pending")
    total_amount = Column(Numeric(12, 2))
    currency = Column(Text, default="USD")
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    shipments = relationship("Shipment", back_populates="order", order_by="Shipment.created_at")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False)
    product_name = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2))

    order = relationship("Order", back_populates="items")


class Shipment(Base):
    __tablename__ = "shipments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id"), nullable=False)
    carrier = Column(Text)
    tracking_number = Column(Text)
    tracking_url = Column(Text)
    status = Column(Text)
    latest_update = Column(Text)
    shipped_at = Column(TIMESTAMP(timezone=True))
    delivered_at = Column(TIMESTAMP(timezone=True))
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    order = relationship("Order", back_populates="shipments")
