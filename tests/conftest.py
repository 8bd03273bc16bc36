import json
import os
import time
from types import SimpleNamespace
from unittest.mock import Mock

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from chatdesk.database import Base
from chatdesk.models import Tenant, TenantPolicies, TenantSubscription, TenantWhatsApp
from chatdesk.services.llm.base import LLMProvider, LLMResponse
from chatdesk.services.whatsapp_client import SendResult, WhatsAppClient


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_tenant(db):
    """Create a tenant with one WhatsApp number, policies and a subscription."""

    def _make(
        name="Acme Store",
        plan="pro",
        phone_number_id="PNID-1",
        app_secret="app-secret",
        access_token="token-1",
        catalog_id=None,
        **policy_fields,
    ):
        tenant = Tenant(name=name, slug=name.lower().replace(" ", "-"), plan=plan)
        db.add(tenant)
        db.flush()
        number = TenantWhatsApp(
            tenant_id=tenant.id,
            phone_number_id=phone_number_id,
            display_phone_number="+94770000000",
            access_token=access_token,
            app_secret=app_secret,
            catalog_id=catalog_id,
        )
        policies = TenantPolicies(tenant_id=tenant.id, **policy_fields)
        subscription = TenantSubscription(tenant_id=tenant.id, plan=plan, status="active")
        db.add_all([number, policies, subscription])
        db.commit()
        return SimpleNamespace(tenant=tenant, number=number, policies=policies, id=tenant.id)

    return _make


class FakeWhatsAppClient(WhatsAppClient):
    """Records payloads instead of calling the Graph API."""

    def __init__(self, fail_with=None):
        super().__init__()
        self.sent = []
        self.fail_with = fail_with

    def send(self, route, payload):
        self.sent.append(payload)
        if self.fail_with:
            return SendResult(success=False, error=self.fail_with)
        return SendResult(success=True, wa_message_id=f"wamid.out.{len(self.sent)}")

    @property
    def texts(self):
        return [p["text"]["body"] for p in self.sent if p.get("type") == "text"]


class FakeLLMProvider(LLMProvider):
    name = "fake"

    def __init__(self, classification=None, reply="Model reply", error=None):
        self.classification = classification or {"intent": "other", "confidence": 0.2}
        self.reply = reply
        self.error = error
        self.calls = []

    def generate(
        self,
        messages,
        model=None,
        temperature=0.7,
        max_tokens=1000,
        timeout_seconds=None,
        json_mode=False,
    ):
        self.calls.append({"messages": messages, "json_mode": json_mode})
        if self.error:
            raise self.error
        if json_mode:
            return LLMResponse(content=json.dumps(self.classification), model="fake")
        return LLMResponse(content=self.reply, model="fake")


@pytest.fixture
def fake_client():
    return FakeWhatsAppClient()


@pytest.fixture
def wa_payload():
    """Build a Cloud API webhook payload carrying one or more messages."""

    def _build(text="Hello", phone_number_id="PNID-1", wa_id="94771234567", name="Alice", message_id=None, **extra):
        message = {
            "from": wa_id,
            "id": message_id or f"wamid.{time.monotonic_ns()}",
            "timestamp": str(int(time.time())),
            "type": "text",
            "text": {"body": text},
        }
        if extra.get("interactive"):
            message["type"] = "interactive"
            message.pop("text")
            message["interactive"] = extra["interactive"]
        return {
            "object": "whatsapp_business_account",
            "entry": [
                {
                    "id": "WABA-1",
                    "changes": [
                        {
                            "field": "messages",
                            "value": {
                                "messaging_product": "whatsapp",
                                "metadata": {
                                    "display_phone_number": "+94770000000",
                                    "phone_number_id": phone_number_id,
                                },
                                "contacts": [{"wa_id": wa_id, "profile": {"name": name}}],
                                "messages": [message],
                            },
                        }
                    ],
                }
            ],
        }

    return _build


@pytest.fixture
def fake_llm():
    """FakeLLMProvider class, so tests can configure their own instance."""
    return FakeLLMProvider


@pytest.fixture
def api(db, session_factory, fake_client):
    """TestClient bound to the test database, with a fake WhatsApp client and worker."""
    from fastapi.testclient import TestClient

    from chatdesk.database import get_db
    from chatdesk.main import app
    from chatdesk.services.tenant_router import TenantRouter

    def _override_get_db():
        yield db

    saved_state = {
        name: getattr(app.state, name) for name in ("tenant_router", "whatsapp_client", "webhook_worker")
    }
    app.dependency_overrides[get_db] = _override_get_db
    app.state.tenant_router = TenantRouter(session_factory)
    app.state.whatsapp_client = fake_client
    app.state.webhook_worker = Mock()
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        for name, value in saved_state.items():
            setattr(app.state, name, value)
