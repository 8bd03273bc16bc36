import uuid

from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Numeric, Text, UniqueConstraint, Uuid

from chatdesk.database import Base, JSONType, utcnow


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("tenant_id", "retailer_id", name="uq_products_tenant_retailer"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    retailer_id = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    description = Column(Text)
    price = Column(Numeric(12, 2))
    currency = Column(Text, default="USD")
    category = Column(Text)
    keywords = Column(JSONType, default=list)
    image_url = Column(Text)
    in_stock = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
