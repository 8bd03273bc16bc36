import json

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session
from starlette.requests import ClientDisconnect

from chatdesk.config import settings
from chatdesk.database import get_db
from chatdesk.logging_config import get_logger
from chatdesk.services.signature import SignatureError, verify_signature
from chatdesk.services.webhook_parser import extract_phone_number_id
from chatdesk.services.webhook_queue import enqueue_webhook_job

logger = get_logger("webhook")

router = APIRouter()

SIGNATURE_HEADER = "X-Hub-Signature-256"


@router.get("/webhook/whatsapp")
async def verify_subscription(
    hub_mode: str = Query(default=None, alias="hub.mode"),
    hub_verify_token: str = Query(default=None, alias="hub.verify_token"),
    hub_challenge: str = Query(default=None, alias="hub.challenge"),
):
    """Meta subscription handshake."""
    if (
        hub_mode == "subscribe"
        and settings.webhook_verify_token
        and hub_verify_token == settings.webhook_verify_token
    ):
        logger.info("Webhook subscription verified")
        return PlainTextResponse(hub_challenge or "")
    logger.warning("Webhook verification rejected", extra={"context": {"mode": hub_mode}})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/webhook/whatsapp")
async def receive_webhook(request: Request, db: Session = Depends(get_db)):
    """Verify, enqueue and acknowledge. Processing happens in the webhook worker."""
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Missing signature")

    try:
        raw_body = await request.body()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during body read")
        return {"status": "ignored"}

    phone_number_id = extract_phone_number_id(raw_body)
    route = request.app.state.tenant_router.resolve(phone_number_id, db) if phone_number_id else None
    if route is None:
        logger.info(
            "Webhook for unknown tenant ignored",
            extra={"context": {"phone_number_id": phone_number_id}},
        )
        return {"status": "ignored"}

    try:
        verify_signature(raw_body, signature, route.app_secret)
    except SignatureError as e:
        logger.warning(
            "Webhook signature rejected",
            extra={"context": {"tenant_id": str(route.tenant_id), "reason": e.reason}},
        )
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        payload = json.loads(raw_body)
    except ValueError as exc:
        logger.warning(
            "Webhook payload is not valid JSON",
            extra={
                "context": {
                    "tenant_id": str(route.tenant_id),
                    "error": str(exc),
                    "body_preview": raw_body[:200].decode("utf-8", "ignore"),
                }
            },
        )
        return {"status": "invalid_payload"}

    job = enqueue_webhook_job(db, payload_json=payload, phone_number_id=phone_number_id)
    db.commit()

    worker = getattr(request.app.state, "webhook_worker", None)
    if worker is not None:
        worker.notify()

    logger.info(
        "Webhook enqueued",
        extra={"context": {"tenant_id": str(route.tenant_id), "job_id": str(job.id)}},
    )
    return {"status": "accepted"}
