"""
Conversation API - one spoken room estimate per session
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException, Request
from pydantic import BaseModel, Field

from .services.conversation_service import conversation_input, conversation_start, conversation_summary
from .services.estimate_service import EstimateServiceContext, ServiceError

router = APIRouter(prefix="/api/conversation", tags=["conversation"])


# --- Models ---

class SpeechPayload(BaseModel):
    text: str
    confidence: Optional[float] = None
    language: Optional[str] = None
    durationSeconds: Optional[float] = None


class ConversationInputRequest(BaseModel):
    text: Optional[str] = None
    speech: Optional[SpeechPayload] = None


class ConversationErrorModel(BaseModel):
    kind: str
    utterance: str
    description: Optional[str] = None
    message: str
    suggestions: List[str] = Field(default_factory=list)


class ConversationStartResponse(BaseModel):
    session_id: str
    step: str
    prompt: str
    done: bool = False


class ConversationTurnResponse(BaseModel):
    session_id: str
    step: str
    prompt: str
    accepted: bool
    done: bool
    errors: List[ConversationErrorModel] = Field(default_factory=list)
    transcript_entry: Optional[Dict[str, Any]] = None
    line_items: int = 0


# --- Helpers ---

def _context(request: Request) -> EstimateServiceContext:
    return request.app.state.service_context


# --- Routes ---

@router.post("/start", response_model=ConversationStartResponse)
def start(request: Request):
    return conversation_start(ctx=_context(request))


@router.post("/{session_id}/input", response_model=ConversationTurnResponse)
def send_input(session_id: str, request: Request, payload: ConversationInputRequest = Body(...)):
    try:
        return conversation_input(
            session_id=session_id,
            payload=payload.model_dump(exclude_none=True),
            ctx=_context(request),
        )
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc


@router.get("/{session_id}/summary")
def summary(session_id: str, request: Request):
    try:
        return conversation_summary(session_id=session_id, ctx=_context(request))
    except ServiceError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
