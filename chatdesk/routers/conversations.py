from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from chatdesk.database import get_db
from chatdesk.schemas.agent import AgentActionResponse, AgentReplyRequest, AgentReplyResponse, AssignRequest
from chatdesk.services.agent_service import AgentAction, AgentActionError, process_action, send_agent_reply

router = APIRouter(prefix="/conversations")

ACTION_MESSAGES = {
    AgentAction.ASSIGN: "Agent took the conversation",
    AgentAction.UNASSIGN: "Conversation returned to the agent queue",
    AgentAction.CLOSE: "Conversation closed",
}


def _apply(
    db: Session, conversation_id: UUID, action: AgentAction, agent_id: Optional[str] = None
) -> AgentActionResponse:
    try:
        old_status, new_status = process_action(db, conversation_id, action, agent_id)
        db.commit()
    except AgentActionError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return AgentActionResponse(
        success=True,
        conversation_id=conversation_id,
        action=action.value,
        old_status=old_status,
        new_status=new_status,
        message=ACTION_MESSAGES[action],
    )


@router.post("/{conversation_id}/assign", response_model=AgentActionResponse)
def assign(conversation_id: UUID, request: AssignRequest, db: Session = Depends(get_db)):
    return _apply(db, conversation_id, AgentAction.ASSIGN, request.agent_id)


@router.post("/{conversation_id}/unassign", response_model=AgentActionResponse)
def unassign(conversation_id: UUID, db: Session = Depends(get_db)):
    return _apply(db, conversation_id, AgentAction.UNASSIGN)


@router.post("/{conversation_id}/close", response_model=AgentActionResponse)
def close_conversation(conversation_id: UUID, db: Session = Depends(get_db)):
    return _apply(db, conversation_id, AgentAction.CLOSE)


@router.post("/{conversation_id}/reply", response_model=AgentReplyResponse)
def reply(conversation_id: UUID, request: AgentReplyRequest, http_request: Request, db: Session = Depends(get_db)):
    state = http_request.app.state
    try:
        result = send_agent_reply(
            db,
            state.tenant_router,
            state.whatsapp_client,
            conversation_id,
            request.agent_id,
            request.text,
        )
        db.commit()
    except AgentActionError as e:
        db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return AgentReplyResponse(
        success=result.success,
        conversation_id=conversation_id,
        wa_message_id=result.wa_message_id,
        error=result.error,
    )
