import uuid

from sqlalchemy import TIMESTAMP, Boolean, Column, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from chatdesk.database import Base, JSONType, utcnow


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    slug = Column(Text, unique=True)
    plan = Column(Text, nullable=False, default="free")  # legacy plan field, see TenantSubscription
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    whatsapp_numbers = relationship("TenantWhatsApp", back_populates="tenant")
    policies = relationship("TenantPolicies", back_populates="tenant", uselist=False)


class TenantWhatsApp(Base):
    __tablename__ = "tenant_whatsapp"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False)
    phone_number_id = Column(Text, nullable=False, unique=True)
    waba_id = Column(Text)
    display_phone_number = Column(Text)
    access_token = Column(Text)
    app_secret = Column(Text)
    catalog_id = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)

    tenant = relationship("Tenant", back_populates="whatsapp_numbers")


class TenantPolicies(Base):
    __tablename__ = "tenant_policies"

    tenant_id = Column(Uuid, ForeignKey("tenants.id"), primary_key=True)
    return_policy = Column(Text)
    shipping_policy = Column(Text)
    # {"monday": {"open": "09:00", "close": "17:00"}, "sunday": null, ...}
    business_hours = Column(JSONType)
    location = Column(Text)
    timezone = Column(Text, default="UTC")
    currency = Column(Text, default="USD")
    default_language = Column(Text, nullable=False, default="EN")
    tone = Column(Text, nullable=False, default="FRIENDLY")
    auto_detect_language = Column(Boolean, nullable=False, default=True)
    ai_enabled = Column(Boolean, nullable=False, default=False)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    tenant = relationship("Tenant", back_populates="policies")


class TenantSubscription(Base):
    __tablename__ = "tenant_subscriptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid, ForeignKey("tenants.id"), nullable=False, unique=True)
    plan = Column(Text, nullable=False, default="free")
    status = Column(Text, nullable=False, default="active")  # active, trialing, past_due, canceled
    current_period_end = Column(TIMESTAMP(timezone=True))
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class TenantQuotaOverride(Base):
    __tablename__ = "tenant_quota_overrides"

    tenant_id = Column(Uuid, ForeignKey("tenants.id"), primary_key=True)
    max_agents = Column(Integer)
    max_inbound_per_month = Column(Integer)
    max_outbound_per_day = Column(Integer)
    max_products = Column(Integer)
    max_ai_calls_per_month = Column(Integer)
    updated_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
