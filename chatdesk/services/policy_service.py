"""Tenant policy reads with an optional Redis read-through cache."""

import json
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Optional
from uuid import UUID

import redis
from sqlalchemy.orm import Session

from chatdesk.config import settings
from chatdesk.logging_config import get_logger
from chatdesk.models import Tenant, TenantPolicies

logger = get_logger("policy_service")

POLICY_CACHE_PREFIX = "chatdesk:policies"
POLICY_CACHE_SOCKET_TIMEOUT_SECONDS = float(os.environ.get("POLICY_CACHE_SOCKET_TIMEOUT_SECONDS", "0.3"))

_cache_client = None
_cache_url: Optional[str] = None


@dataclass
class TenantPolicySnapshot:
    tenant_id: str
    business_name: str = ""
    return_policy: Optional[str] = None
    shipping_policy: Optional[str] = None
    business_hours: dict[str, Any] = field(default_factory=dict)
    location: Optional[str] = None
    timezone: str = "UTC"
    currency: str = "USD"
    default_language: str = "EN"
    tone: str = "FRIENDLY"
    auto_detect_language: bool = True
    ai_enabled: bool = False


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _get_cache_client():
    global _cache_client, _cache_url
    if not settings.redis_url:
        return None
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return None
    if not _is_env_enabled(os.environ.get("POLICY_CACHE_ENABLED"), default=True):
        return None
    if _cache_client is None or _cache_url != settings.redis_url:
        _cache_url = settings.redis_url
        _cache_client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=POLICY_CACHE_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=POLICY_CACHE_SOCKET_TIMEOUT_SECONDS,
        )
    return _cache_client


def _cache_key(tenant_id) -> str:
    return f"{POLICY_CACHE_PREFIX}:{tenant_id}"


def _read_cache(tenant_id) -> Optional[TenantPolicySnapshot]:
    cache = _get_cache_client()
    if cache is None:
        return None
    try:
        raw = cache.get(_cache_key(tenant_id))
    except Exception as e:
        logger.warning("Policy cache read failed", extra={"context": {"tenant_id": str(tenant_id), "error": str(e)}})
        return None
    if not raw:
        return None
    try:
        return TenantPolicySnapshot(**json.loads(raw))
    except (TypeError, ValueError):
        return None


def _write_cache(snapshot: TenantPolicySnapshot) -> None:
    cache = _get_cache_client()
    if cache is None:
        return
    try:
        cache.setex(_cache_key(snapshot.tenant_id), settings.policy_cache_ttl_seconds, json.dumps(asdict(snapshot)))
    except Exception as e:
        logger.warning(
            "Policy cache write failed", extra={"context": {"tenant_id": snapshot.tenant_id, "error": str(e)}}
        )


def load_tenant_policies(db: Session, tenant_id: UUID) -> TenantPolicySnapshot:
    tenant = db.query(Tenant).filter(Tenant.id == tenant_id).first()
    row = db.query(TenantPolicies).filter(TenantPolicies.tenant_id == tenant_id).first()

    snapshot = TenantPolicySnapshot(tenant_id=str(tenant_id), business_name=tenant.name if tenant else "")
    if row is None:
        return snapshot

    snapshot.return_policy = row.return_policy
    snapshot.shipping_policy = row.shipping_policy
    snapshot.business_hours = row.business_hours or {}
    snapshot.location = row.location
    snapshot.timezone = row.timezone or "UTC"
    snapshot.currency = row.currency or "USD"
    snapshot.default_language = row.default_language or "EN"
    snapshot.tone = row.tone or "FRIENDLY"
    snapshot.auto_detect_language = bool(row.auto_detect_language)
    snapshot.ai_enabled = bool(row.ai_enabled)
    return snapshot


def get_tenant_policies(db: Session, tenant_id: UUID) -> TenantPolicySnapshot:
    cached = _read_cache(tenant_id)
    if cached is not None:
        return cached
    snapshot = load_tenant_policies(db, tenant_id)
    _write_cache(snapshot)
    return snapshot


def invalidate_tenant_policies(tenant_id: UUID) -> None:
    cache = _get_cache_client()
    if cache is None:
        return
    try:
        cache.delete(_cache_key(tenant_id))
    except Exception as e:
        logger.warning("Policy cache invalidation failed", extra={"context": {"error": str(e)}})
