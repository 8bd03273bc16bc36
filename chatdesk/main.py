import os

from fastapi import FastAPI

from chatdesk.config import settings
from chatdesk.database import SessionLocal
from chatdesk.logging_config import get_logger, setup_logging
from chatdesk.routers import automation, conversations, webhook
from chatdesk.services.automation_dispatcher import AutomationDispatcher
from chatdesk.services.llm import build_llm_provider
from chatdesk.services.tenant_router import TenantRouter
from chatdesk.services.webhook_queue import WebhookWorker
from chatdesk.services.webhook_service import WebhookPipeline
from chatdesk.services.whatsapp_client import WhatsAppClient

setup_logging(settings.log_level)

logger = get_logger("main")

app = FastAPI(
    title="Chatdesk API",
    description="Multi-tenant WhatsApp customer-service backend",
    version="0.1.0",
)

app.include_router(webhook.router)
app.include_router(automation.router)
app.include_router(conversations.router)

app.state.tenant_router = TenantRouter(SessionLocal)
app.state.whatsapp_client = WhatsAppClient()
app.state.llm_provider = build_llm_provider()
app.state.pipeline = WebhookPipeline(
    app.state.tenant_router,
    app.state.whatsapp_client,
    app.state.llm_provider,
)
app.state.webhook_worker = WebhookWorker(
    SessionLocal,
    app.state.pipeline,
    concurrency=settings.webhook_worker_concurrency,
    interval_seconds=settings.webhook_worker_interval_seconds,
    max_attempts=settings.webhook_job_max_attempts,
)
app.state.automation_dispatcher = AutomationDispatcher(
    SessionLocal,
    webhook_url=settings.n8n_webhook_url,
    api_key=settings.automation_api_key,
    interval_seconds=settings.automation_poll_interval_seconds,
    batch_size=settings.automation_batch_size,
    fetch_limit=settings.automation_fetch_limit,
    request_timeout_seconds=settings.automation_request_timeout_seconds,
)


def _is_env_enabled(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _is_background_enabled(env_name: str) -> bool:
    if os.environ.get("PYTEST_CURRENT_TEST"):
        return False
    return _is_env_enabled(os.environ.get(env_name), default=True)


@app.on_event("startup")
async def start_background_workers() -> None:
    if _is_background_enabled("WEBHOOK_WORKER_ENABLED"):
        app.state.webhook_worker.start()
    if _is_background_enabled("AUTOMATION_DISPATCHER_ENABLED"):
        app.state.automation_dispatcher.start()
    logger.info(
        "Chatdesk started",
        extra={"context": {"ai_enabled": app.state.llm_provider is not None}},
    )


@app.on_event("shutdown")
async def stop_background_workers() -> None:
    await app.state.webhook_worker.stop()
    await app.state.automation_dispatcher.stop()


@app.get("/health")
async def health():
    return {"status": "ok"}
