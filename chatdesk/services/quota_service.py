"""Plan limits, admin overrides, and quota checks against usage counters."""

from dataclasses import dataclass, replace
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from chatdesk.logging_config import get_logger
from chatdesk.models import Tenant, TenantQuotaOverride, TenantSubscription
from chatdesk.services.usage_service import current_day, current_period, get_usage

logger = get_logger("quota_service")


@dataclass(frozen=True)
class PlanLimits:
    max_agents: Optional[int]
    max_inbound_per_month: Optional[int]
    max_outbound_per_day: Optional[int]
    max_products: Optional[int]
    max_ai_calls_per_month: Optional[int]
    automation_enabled: bool
    analytics_enabled: bool


# None means unlimited
PLAN_LIMITS = {
    "free": PlanLimits(
        max_agents=1,
        max_inbound_per_month=500,
        max_outbound_per_day=100,
        max_products=50,
        max_ai_calls_per_month=100,
        automation_enabled=False,
        analytics_enabled=False,
    ),
    "pro": PlanLimits(
        max_agents=3,
        max_inbound_per_month=5000,
        max_outbound_per_day=1000,
        max_products=500,
        max_ai_calls_per_month=2000,
        automation_enabled=True,
        analytics_enabled=True,
    ),
    "business": PlanLimits(
        max_agents=10,
        max_inbound_per_month=50000,
        max_outbound_per_day=10000,
        max_products=None,
        max_ai_calls_per_month=20000,
        automation_enabled=True,
        analytics_enabled=True,
    ),
}
DEFAULT_PLAN = "free"

OVERRIDE_FIELDS = (
    "max_agents",
    "max_inbound_per_month",
    "max_outbound_per_day",
    "max_products",
    "max_ai_calls_per_month",
)


@dataclass(frozen=True)
class QuotaCheck:
    allowed: bool
    used: int
    limit: Optional[int]

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(self.limit - self.used, 0)


def get_plan_limits(plan: Optional[str]) -> PlanLimits:
    return PLAN_LIMITS.get((plan or "").lower(), PLAN_LIMITS[DEFAULT_PLAN])


def get_tenant_plan(db: Session, tenant_id: UUID) -> str:
    """Active subscription plan; canceled or missing subscriptions fall back to the tenant's plan field."""
    subscription = db.query(TenantSubscription).filter(TenantSubscription.tenant_id == tenant_id).first()
    if subscription is not None and subscription.status != "canceled" and subscription.plan:
        return subscription.plan

    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    if tenant is not None and tenant.plan:
        return tenant.plan
    return DEFAULT_PLAN


def get_effective_limits(db: Session, tenant_id: UUID) -> PlanLimits:
    limits = get_plan_limits(get_tenant_plan(db, tenant_id))

    override = db.query(TenantQuotaOverride).filter(TenantQuotaOverride.tenant_id == tenant_id).first()
    if override is None:
        return limits

    changes = {
        field: getattr(override, field) for field in OVERRIDE_FIELDS if getattr(override, field) is not None
    }
    return replace(limits, **changes) if changes else limits


def _check(used: int, limit: Optional[int]) -> QuotaCheck:
    return QuotaCheck(allowed=limit is None or used < limit, used=used, limit=limit)


def check_inbound_quota(db: Session, tenant_id: UUID) -> QuotaCheck:
    limits = get_effective_limits(db, tenant_id)
    used = get_usage(db, tenant_id, current_period())["inbound"]
    return _check(used, limits.max_inbound_per_month)


def check_outbound_quota(db: Session, tenant_id: UUID) -> QuotaCheck:
    limits = get_effective_limits(db, tenant_id)
    used = get_usage(db, tenant_id, current_day())["outbound"]
    return _check(used, limits.max_outbound_per_day)


def check_ai_quota(db: Session, tenant_id: UUID) -> QuotaCheck:
    limits = get_effective_limits(db, tenant_id)
    used = get_usage(db, tenant_id, current_period())["ai_calls"]
    return _check(used, limits.max_ai_calls_per_month)


def check_agent_limit(db: Session, tenant_id: UUID, current_agents: int) -> QuotaCheck:
    limits = get_effective_limits(db, tenant_id)
    return _check(current_agents, limits.max_agents)


def check_automation_enabled(db: Session, tenant_id: UUID) -> bool:
    return get_effective_limits(db, tenant_id).automation_enabled
