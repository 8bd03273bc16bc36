import asyncio
import json
from datetime import datetime, timedelta, timezone

import httpx

from chatdesk.models import AutomationEvent
from chatdesk.services.automation_dispatcher import AUTOMATION_KEY_HEADER, AutomationDispatcher
from chatdesk.services.automation_service import AutomationEventStatus, AutomationEventType, create_automation_event


def _dispatcher(session_factory, handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AutomationDispatcher(
        session_factory,
        webhook_url="https://n8n.example.com/webhook/chatdesk",
        api_key="shared-key",
        http_client=client,
        **kwargs,
    )


def _create_events(db, tenant_id, count):
    events = [
        create_automation_event(db, tenant_id, AutomationEventType.CASE_CREATED, {"n": i}) for i in range(count)
    ]
    db.commit()
    return [e.id for e in events]


def _make_due(db, event_id):
    db.query(AutomationEvent).filter(AutomationEvent.id == event_id).update(
        {"next_retry_at": datetime.now(timezone.utc) - timedelta(seconds=1)}
    )
    db.commit()


class TestRunOnce:
    def test_delivers_with_envelope_and_key(self, db, session_factory, make_tenant):
        tenant = make_tenant(plan="pro")
        [event_id] = _create_events(db, tenant.id, 1)
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        results = asyncio.run(_dispatcher(session_factory, handler).run_once())

        assert results == {"fetched": 1, "dispatched": 1, "failed": 0}
        body = json.loads(requests[0].content)
        assert body["eventId"] == str(event_id)
        assert body["eventType"] == "case.created"
        assert body["tenantId"] == str(tenant.id)
        assert body["payload"] == {"n": 0}
        assert "timestamp" in body
        assert requests[0].headers[AUTOMATION_KEY_HEADER] == "shared-key"

        db.expire_all()
        assert db.get(AutomationEvent, event_id).status == AutomationEventStatus.DISPATCHED.value

    def test_non_2xx_schedules_retry(self, db, session_factory, make_tenant):
        tenant = make_tenant(plan="pro")
        [event_id] = _create_events(db, tenant.id, 1)

        results = asyncio.run(_dispatcher(session_factory, lambda r: httpx.Response(503)).run_once())

        assert results["failed"] == 1
        db.expire_all()
        event = db.get(AutomationEvent, event_id)
        assert event.status == AutomationEventStatus.PENDING.value
        assert event.attempts == 1
        assert event.error.startswith("HTTP 503")

    def test_transport_error_counts_as_failure(self, db, session_factory, make_tenant):
        tenant = make_tenant(plan="pro")
        _create_events(db, tenant.id, 1)

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        results = asyncio.run(_dispatcher(session_factory, handler).run_once())
        assert results == {"fetched": 1, "dispatched": 0, "failed": 1}

    def test_three_failures_then_success(self, db, session_factory, make_tenant):
        tenant = make_tenant(plan="pro")
        [event_id] = _create_events(db, tenant.id, 1)
        responses = iter([500, 500, 500, 200])
        dispatcher = _dispatcher(session_factory, lambda r: httpx.Response(next(responses)))

        for _ in range(4):
            asyncio.run(dispatcher.run_once())
            _make_due(db, event_id)

        db.expire_all()
        event = db.get(AutomationEvent, event_id)
        assert event.status == AutomationEventStatus.DISPATCHED.value
        assert event.attempts == 3

    def test_batches_respect_batch_size(self, db, session_factory, make_tenant):
        tenant = make_tenant(plan="pro")
        _create_events(db, tenant.id, 7)
        in_flight = 0
        peak = 0

        async def handler(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200)

        results = asyncio.run(_dispatcher(session_factory, handler, batch_size=3).run_once())

        assert results["dispatched"] == 7
        assert peak <= 3

    def test_nothing_pending(self, session_factory):
        results = asyncio.run(_dispatcher(session_factory, lambda r: httpx.Response(200)).run_once())
        assert results == {"fetched": 0, "dispatched": 0, "failed": 0}


class TestLifecycle:
    def test_not_started_without_url(self, session_factory):
        dispatcher = AutomationDispatcher(session_factory, webhook_url="")
        assert dispatcher.start() is False
        assert dispatcher.is_running is False

    def test_start_and_stop(self, db, session_factory, make_tenant):
        tenant = make_tenant(plan="pro")
        [event_id] = _create_events(db, tenant.id, 1)

        async def scenario():
            dispatcher = _dispatcher(session_factory, lambda r: httpx.Response(200), interval_seconds=0.1)
            assert dispatcher.start() is True
            await asyncio.sleep(0.2)
            await dispatcher.stop()
            return dispatcher

        dispatcher = asyncio.run(scenario())

        assert dispatcher.is_running is False
        db.expire_all()
        assert db.get(AutomationEvent, event_id).status == AutomationEventStatus.DISPATCHED.value
