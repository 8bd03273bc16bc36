from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from chatdesk.config import settings
from chatdesk.database import get_db
from chatdesk.logging_config import get_logger
from chatdesk.schemas.automation import (
    AutomationCallbackAction,
    AutomationCallbackRequest,
    AutomationCallbackResponse,
    AutomationEventResponse,
    AutomationFailedRequest,
)
from chatdesk.services.automation_service import DEFAULT_CALLBACK_ERROR, get_event, mark_delivered, mark_failed

logger = get_logger("automation")

router = APIRouter(prefix="/automation")


def require_automation_key(
    x_automation_api_key: Optional[str] = Header(default=None, alias="X-Automation-API-Key"),
) -> None:
    expected = settings.automation_api_key
    if not expected:
        logger.warning("AUTOMATION_API_KEY not configured, accepting unauthenticated automation request")
        return
    if not x_automation_api_key or x_automation_api_key != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid automation API key")


def _event_response(event) -> AutomationEventResponse:
    return AutomationEventResponse(
        id=event.id,
        tenant_id=event.tenant_id,
        event_type=event.event_type,
        status=event.status,
        attempts=event.attempts or 0,
        last_attempt_at=event.last_attempt_at,
        next_retry_at=event.next_retry_at,
        processed_at=event.processed_at,
        error=event.error,
        created_at=event.created_at,
    )


def _not_found(event_id: UUID) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Event {event_id} not found")


@router.post(
    "/events/{event_id}/delivered",
    response_model=AutomationEventResponse,
    dependencies=[Depends(require_automation_key)],
)
def event_delivered(event_id: UUID, db: Session = Depends(get_db)):
    event = mark_delivered(db, event_id)
    if event is None:
        raise _not_found(event_id)
    db.commit()
    return _event_response(event)


@router.post(
    "/events/{event_id}/failed",
    response_model=AutomationEventResponse,
    dependencies=[Depends(require_automation_key)],
)
def event_failed(event_id: UUID, request: Optional[AutomationFailedRequest] = None, db: Session = Depends(get_db)):
    error = (request.error if request else None) or DEFAULT_CALLBACK_ERROR
    event = mark_failed(db, event_id, error)
    if event is None:
        raise _not_found(event_id)
    db.commit()
    return _event_response(event)


@router.get(
    "/events/{event_id}",
    response_model=AutomationEventResponse,
    dependencies=[Depends(require_automation_key)],
)
def event_status(event_id: UUID, db: Session = Depends(get_db)):
    event = get_event(db, event_id)
    if event is None:
        raise _not_found(event_id)
    return _event_response(event)


@router.post(
    "/webhook/n8n",
    response_model=AutomationCallbackResponse,
    dependencies=[Depends(require_automation_key)],
)
def n8n_callback(request: AutomationCallbackRequest, db: Session = Depends(get_db)):
    """Workflow engine reporting back what it did with an event."""
    context = {
        "action": request.action.value,
        "event_id": str(request.event_id) if request.event_id else None,
        "tenant_id": str(request.tenant_id) if request.tenant_id else None,
    }

    match request.action:
        case AutomationCallbackAction.EVENT_DELIVERED | AutomationCallbackAction.EVENT_FAILED:
            if request.event_id is None:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="eventId is required")
            if request.action is AutomationCallbackAction.EVENT_DELIVERED:
                event = mark_delivered(db, request.event_id)
            else:
                error = request.data.get("error") or DEFAULT_CALLBACK_ERROR
                event = mark_failed(db, request.event_id, str(error))
            if event is None:
                raise _not_found(request.event_id)
            db.commit()
            message = f"Event marked {event.status}"
        case (
            AutomationCallbackAction.NOTIFICATION_SENT
            | AutomationCallbackAction.SLACK_ALERT
            | AutomationCallbackAction.EMAIL_SENT
        ):
            message = "Acknowledged"

    logger.info("Automation callback received", extra={"context": context})
    return AutomationCallbackResponse(
        success=True,
        action=request.action,
        event_id=request.event_id,
        message=message,
    )
