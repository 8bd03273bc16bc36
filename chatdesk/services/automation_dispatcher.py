"""Polls pending automation events and POSTs them to the workflow engine.

Assumes a single running poller. Two uncoordinated instances can deliver the
same event twice; receivers must tolerate at-least-once delivery.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import UUID

import httpx
from sqlalchemy.orm import Session

from chatdesk.logging_config import get_logger
from chatdesk.services.alert_service import alert_error
from chatdesk.services.automation_service import (
    AutomationEventStatus,
    get_pending_events,
    mark_dispatched,
    mark_failed,
)

logger = get_logger("automation_dispatcher")

AUTOMATION_KEY_HEADER = "X-Automation-API-Key"


@dataclass(frozen=True)
class EventEnvelope:
    id: UUID
    event_type: str
    tenant_id: UUID
    payload: dict[str, Any]

    def to_body(self) -> dict[str, Any]:
        return {
            "eventId": str(self.id),
            "eventType": self.event_type,
            "tenantId": str(self.tenant_id),
            "payload": self.payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class AutomationDispatcher:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        webhook_url: str,
        api_key: str = "",
        interval_seconds: float = 30.0,
        batch_size: int = 5,
        fetch_limit: int = 50,
        request_timeout_seconds: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.session_factory = session_factory
        self.webhook_url = webhook_url
        self.api_key = api_key
        self.interval_seconds = max(interval_seconds, 0.1)
        self.batch_size = max(batch_size, 1)
        self.fetch_limit = fetch_limit
        self.request_timeout_seconds = request_timeout_seconds
        self._http_client = http_client
        self._owns_client = http_client is None
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """Start the polling task. Returns False when not configured or already running."""
        if self.is_running:
            logger.warning("Automation dispatcher already running")
            return False
        if not self.webhook_url:
            logger.warning("N8N_WEBHOOK_URL not configured, automation dispatcher will not start")
            return False

        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.request_timeout_seconds)
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Automation dispatcher started",
            extra={"context": {"interval_seconds": self.interval_seconds, "batch_size": self.batch_size}},
        )
        return True

    async def stop(self, timeout: float = 30.0) -> None:
        """Signal shutdown and wait for the in-flight batch to finish."""
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except asyncio.TimeoutError:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        finally:
            self._task = None
            if self._owns_client and self._http_client is not None:
                await self._http_client.aclose()
                self._http_client = None
        logger.info("Automation dispatcher stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as exc:
                logger.error("Automation dispatcher run failed", extra={"context": {"error": str(exc)}})
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def _load_pending(self) -> list[EventEnvelope]:
        db = self.session_factory()
        try:
            return [
                EventEnvelope(id=e.id, event_type=e.event_type, tenant_id=e.tenant_id, payload=e.payload or {})
                for e in get_pending_events(db, limit=self.fetch_limit)
            ]
        finally:
            db.close()

    def _record_outcome(self, envelope: EventEnvelope, error: Optional[str]) -> None:
        db = self.session_factory()
        try:
            if error is None:
                mark_dispatched(db, envelope.id)
                logger.info(
                    "Event dispatched",
                    extra={"context": {"event_id": str(envelope.id), "event_type": envelope.event_type}},
                )
            else:
                event = mark_failed(db, envelope.id, error)
                if event is not None and event.status == AutomationEventStatus.FAILED.value:
                    alert_error(
                        "Automation event failed permanently",
                        {"event_id": str(envelope.id), "event_type": envelope.event_type, "error": error},
                    )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    async def _deliver(self, envelope: EventEnvelope) -> Optional[str]:
        """POST one event. Returns None on 2xx, else the error text."""
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers[AUTOMATION_KEY_HEADER] = self.api_key
        try:
            response = await self._http_client.post(self.webhook_url, json=envelope.to_body(), headers=headers)
        except httpx.HTTPError as e:
            return f"{e.__class__.__name__}: {e}"
        if response.is_success:
            return None
        return f"HTTP {response.status_code}: {response.text[:500]}"

    async def run_once(self) -> dict[str, int]:
        """Fetch due events and deliver them in concurrent batches."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.request_timeout_seconds)

        events = self._load_pending()
        results = {"fetched": len(events), "dispatched": 0, "failed": 0}
        if not events:
            return results

        logger.info("Processing pending automation events", extra={"context": {"count": len(events)}})
        for start in range(0, len(events), self.batch_size):
            batch = events[start : start + self.batch_size]
            errors = await asyncio.gather(*(self._deliver(envelope) for envelope in batch))
            for envelope, error in zip(batch, errors):
                try:
                    self._record_outcome(envelope, error)
                except Exception as exc:
                    logger.error(
                        "Failed to record automation event outcome",
                        extra={"context": {"event_id": str(envelope.id), "error": str(exc)}},
                    )
                    continue
                if error is None:
                    results["dispatched"] += 1
                else:
                    results["failed"] += 1
        return results
