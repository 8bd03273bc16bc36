from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field


class AutomationFailedRequest(BaseModel):
    error: Optional[str] = None


class AutomationEventResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    event_type: str
    status: str
    attempts: int
    last_attempt_at: Optional[datetime] = None
    next_retry_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    error: Optional[str] = None
    created_at: datetime


class AutomationCallbackAction(str, Enum):
    NOTIFICATION_SENT = "notification_sent"
    SLACK_ALERT = "slack_alert"
    EMAIL_SENT = "email_sent"
    EVENT_DELIVERED = "event_delivered"
    EVENT_FAILED = "event_failed"


class AutomationCallbackRequest(BaseModel):
    action: AutomationCallbackAction
    event_id: Optional[UUID] = Field(default=None, validation_alias=AliasChoices("eventId", "event_id"))
    tenant_id: Optional[UUID] = Field(default=None, validation_alias=AliasChoices("tenantId", "tenant_id"))
    data: dict[str, Any] = Field(default_factory=dict)


class AutomationCallbackResponse(BaseModel):
    success: bool
    action: AutomationCallbackAction
    event_id: Optional[UUID] = None
    message: Optional[str] = None
