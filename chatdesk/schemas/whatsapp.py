"""WhatsApp Cloud API webhook envelope."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class WAProfile(BaseModel):
    name: Optional[str] = None


class WAContact(BaseModel):
    wa_id: Optional[str] = None
    profile: Optional[WAProfile] = None


class WAText(BaseModel):
    body: str = ""


class WAInteractiveReply(BaseModel):
    id: str
    title: str = ""
    description: Optional[str] = None


class WAInteractive(BaseModel):
    type: Optional[str] = None
    list_reply: Optional[WAInteractiveReply] = None
    button_reply: Optional[WAInteractiveReply] = None


class WAMessage(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    from_: str = Field(alias="from")
    timestamp: Optional[str] = None
    type: str = "text"
    text: Optional[WAText] = None
    interactive: Optional[WAInteractive] = None


class WAMetadata(BaseModel):
    phone_number_id: str
    display_phone_number: Optional[str] = None


class WAValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    messaging_product: Optional[str] = None
    metadata: Optional[WAMetadata] = None
    contacts: list[WAContact] = Field(default_factory=list)
    messages: list[WAMessage] = Field(default_factory=list)
    statuses: list[dict[str, Any]] = Field(default_factory=list)


class WAChange(BaseModel):
    field: str
    value: WAValue


class WAEntry(BaseModel):
    id: Optional[str] = None
    changes: list[WAChange] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    object: str
    entry: list[WAEntry] = Field(default_factory=list)
