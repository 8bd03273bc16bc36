from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AssignRequest(BaseModel):
    agent_id: str


class AgentReplyRequest(BaseModel):
    agent_id: str
    text: str = Field(min_length=1, max_length=4096)


class AgentActionResponse(BaseModel):
    success: bool
    conversation_id: UUID
    action: str
    old_status: str
    new_status: str
    message: Optional[str] = None


class AgentReplyResponse(BaseModel):
    success: bool
    conversation_id: UUID
    wa_message_id: Optional[str] = None
    error: Optional[str] = None
