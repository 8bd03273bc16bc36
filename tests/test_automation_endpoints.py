import uuid

import pytest

from chatdesk.config import settings
from chatdesk.models import AutomationEvent
from chatdesk.services.automation_service import (
    DEFAULT_CALLBACK_ERROR,
    AutomationEventType,
    create_automation_event,
)

API_KEY = "automation-key"


@pytest.fixture(autouse=True)
def _api_key(monkeypatch):
    monkeypatch.setattr(settings, "automation_api_key", API_KEY)


@pytest.fixture
def event(db, make_tenant):
    tenant = make_tenant(plan="pro")
    event = create_automation_event(db, tenant.id, AutomationEventType.CASE_CREATED, {"caseId": "c-1"})
    db.commit()
    return event


def _headers(key=API_KEY):
    return {"X-Automation-API-Key": key}


class TestAuth:
    def test_missing_key_rejected(self, api, event):
        response = api.get(f"/automation/events/{event.id}")
        assert response.status_code == 401

    def test_wrong_key_rejected(self, api, event):
        response = api.get(f"/automation/events/{event.id}", headers=_headers("wrong"))
        assert response.status_code == 401

    def test_unconfigured_key_allows_requests(self, api, event, monkeypatch):
        monkeypatch.setattr(settings, "automation_api_key", "")
        response = api.get(f"/automation/events/{event.id}")
        assert response.status_code == 200


class TestEventCallbacks:
    def test_get_event(self, api, event):
        response = api.get(f"/automation/events/{event.id}", headers=_headers())
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == str(event.id)
        assert body["event_type"] == "case.created"
        assert body["status"] == "pending"
        assert body["attempts"] == 0

    def test_unknown_event(self, api):
        response = api.get(f"/automation/events/{uuid.uuid4()}", headers=_headers())
        assert response.status_code == 404

    def test_delivered(self, api, db, event):
        response = api.post(f"/automation/events/{event.id}/delivered", headers=_headers())

        assert response.status_code == 200
        assert response.json()["status"] == "delivered"
        db.expire_all()
        stored = db.get(AutomationEvent, event.id)
        assert stored.status == "delivered"
        assert stored.processed_at is not None

    def test_failed_with_error(self, api, db, event):
        response = api.post(
            f"/automation/events/{event.id}/failed", headers=_headers(), json={"error": "Slack returned 500"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "pending"
        assert body["attempts"] == 1
        assert body["error"] == "Slack returned 500"
        assert body["next_retry_at"] is not None

    def test_failed_without_body_uses_default_error(self, api, event):
        response = api.post(f"/automation/events/{event.id}/failed", headers=_headers())
        assert response.status_code == 200
        assert response.json()["error"] == DEFAULT_CALLBACK_ERROR

    def test_failed_after_delivered_is_ignored(self, api, event):
        api.post(f"/automation/events/{event.id}/delivered", headers=_headers())
        response = api.post(f"/automation/events/{event.id}/failed", headers=_headers())
        assert response.json()["status"] == "delivered"
        assert response.json()["attempts"] == 0

    def test_unknown_event_delivered(self, api):
        response = api.post(f"/automation/events/{uuid.uuid4()}/delivered", headers=_headers())
        assert response.status_code == 404


class TestN8nCallback:
    def test_event_delivered(self, api, event):
        response = api.post(
            "/automation/webhook/n8n",
            headers=_headers(),
            json={"action": "event_delivered", "eventId": str(event.id)},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Event marked delivered"

    def test_event_failed_uses_data_error(self, api, db, event):
        response = api.post(
            "/automation/webhook/n8n",
            headers=_headers(),
            json={"action": "event_failed", "eventId": str(event.id), "data": {"error": "SMTP down"}},
        )
        assert response.status_code == 200
        db.expire_all()
        assert db.get(AutomationEvent, event.id).error == "SMTP down"

    def test_event_action_requires_event_id(self, api):
        response = api.post("/automation/webhook/n8n", headers=_headers(), json={"action": "event_delivered"})
        assert response.status_code == 400

    def test_informational_action_acknowledged(self, api):
        response = api.post(
            "/automation/webhook/n8n",
            headers=_headers(),
            json={"action": "slack_alert", "tenantId": str(uuid.uuid4())},
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Acknowledged"

    def test_unknown_action_rejected(self, api):
        response = api.post("/automation/webhook/n8n", headers=_headers(), json={"action": "launch_rockets"})
        assert response.status_code == 422
