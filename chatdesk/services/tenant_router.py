"""Maps a WhatsApp phone_number_id to the owning tenant's routing info."""

import threading
from dataclasses import dataclass
from typing import Callable, Optional
from uuid import UUID

from cachetools import TTLCache
from sqlalchemy.orm import Session

from chatdesk.config import settings
from chatdesk.logging_config import get_logger
from chatdesk.models import Tenant, TenantWhatsApp

logger = get_logger("tenant_router")


@dataclass(frozen=True)
class TenantRouteInfo:
    tenant_id: UUID
    tenant_name: str
    phone_number_id: str
    access_token: Optional[str] = None
    app_secret: Optional[str] = None
    catalog_id: Optional[str] = None
    display_phone_number: Optional[str] = None


class TenantRouter:
    """Cached tenant lookup.

    Misses (unknown or inactive numbers) are not cached, so a newly connected
    number becomes routable on the next lookup. Config writes must call
    invalidate(), otherwise stale entries live until the TTL expires.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        cache: Optional[TTLCache] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache if cache is not None else TTLCache(
            maxsize=settings.tenant_cache_maxsize, ttl=settings.tenant_cache_ttl_seconds
        )
        self._lock = threading.Lock()

    def resolve(self, phone_number_id: str, db: Optional[Session] = None) -> Optional[TenantRouteInfo]:
        if not phone_number_id:
            return None

        with self._lock:
            cached = self.cache.get(phone_number_id)
        if cached is not None:
            return cached

        if db is not None:
            info = self._load(db, phone_number_id)
        else:
            session = self.session_factory()
            try:
                info = self._load(session, phone_number_id)
            finally:
                session.close()

        if info is None:
            logger.info("No active tenant for phone_number_id", extra={"context": {"phone_number_id": phone_number_id}})
            return None

        with self._lock:
            self.cache[phone_number_id] = info
        return info

    def invalidate(self, phone_number_id: Optional[str] = None) -> None:
        """Drop one cached route, or all of them."""
        with self._lock:
            if phone_number_id is None:
                self.cache.clear()
            else:
                self.cache.pop(phone_number_id, None)

    @staticmethod
    def _load(db: Session, phone_number_id: str) -> Optional[TenantRouteInfo]:
        row = (
            db.query(TenantWhatsApp, Tenant)
            .join(Tenant, Tenant.id == TenantWhatsApp.tenant_id)
            .filter(
                TenantWhatsApp.phone_number_id == phone_number_id,
                TenantWhatsApp.is_active.is_(True),
                Tenant.is_active.is_(True),
            )
            .first()
        )
        if row is None:
            return None
        wa, tenant = row
        return TenantRouteInfo(
            tenant_id=tenant.id,
            tenant_name=tenant.name,
            phone_number_id=wa.phone_number_id,
            access_token=wa.access_token,
            app_secret=wa.app_secret,
            catalog_id=wa.catalog_id,
            display_phone_number=wa.display_phone_number,
        )
