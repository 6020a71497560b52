"""
Conversation endpoints over the engagement engine.
"""

from typing import List, Optional, Dict, Any
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from honeytrack.core.engine import ConversationEngine
from honeytrack.core.logging import get_logger
from honeytrack.core.session_tracker import TerminationReason
from honeytrack.services.callback import build_callback_payload

logger = get_logger(__name__)
router = APIRouter()


class HistoryMessage(BaseModel):
    """One prior message supplied by the caller."""
    sender: str
    text: str


class MessageRequest(BaseModel):
    """Inbound message for a conversation."""
    sender: str = Field("scammer", description="'scammer'/'counterparty' or 'agent'/'user'/'honeypot'")
    text: str = Field(..., description="Message content")
    analysis: Optional[Dict[str, Any]] = Field(None, description="Structured analysis from the upstream classifier")
    recentHistory: Optional[List[HistoryMessage]] = Field(None, description="Recent messages for advisory context")


class TerminateRequest(BaseModel):
    reason: str = TerminationReason.MANUAL_TERMINATION.value


def get_engine(request: Request) -> ConversationEngine:
    """Engine constructed at application startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Engine not initialized")
    return engine


@router.post("/conversations/{conversation_id}/messages")
async def process_message(conversation_id: str, body: MessageRequest,
                          engine: ConversationEngine = Depends(get_engine)):
    """
    Process one message and return either progress or the final report.
    """
    history = [m.model_dump() for m in body.recentHistory] if body.recentHistory else None
    result = await engine.process_message(
        conversation_id,
        body.sender,
        body.text,
        analysis=body.analysis,
        recent_history=history,
    )
    return result.to_dict()


@router.post("/conversations/{conversation_id}/terminate")
async def terminate_conversation(conversation_id: str, body: Optional[TerminateRequest] = None,
                                 engine: ConversationEngine = Depends(get_engine)):
    reason = body.reason if body is not None else TerminationReason.MANUAL_TERMINATION.value
    try:
        result = await engine.terminate(conversation_id, reason)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return result.to_dict()


@router.get("/conversations/active")
async def list_active(engine: ConversationEngine = Depends(get_engine)):
    conversations = engine.registry.list_active()
    return {"count": len(conversations), "conversations": conversations}


@router.get("/conversations/completed")
async def list_completed(engine: ConversationEngine = Depends(get_engine)):
    reports = engine.registry.list_completed()
    return {"count": len(reports), "reports": reports}


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, engine: ConversationEngine = Depends(get_engine)):
    state = engine.get_state(conversation_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Conversation {conversation_id} not found")
    return state


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, engine: ConversationEngine = Depends(get_engine)):
    if not engine.registry.remove(conversation_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Conversation {conversation_id} not found")
    return {"status": "deleted", "conversationId": conversation_id}


@router.get("/conversations/{conversation_id}/callback-payload")
async def get_callback_payload(conversation_id: str, engine: ConversationEngine = Depends(get_engine)):
    """Webhook payload for a conversation; delivery is up to the caller."""
    tracker = engine.registry.get(conversation_id)
    if tracker is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Conversation {conversation_id} not found")
    return build_callback_payload(tracker).to_dict()
