"""Session handling for the voice conversation, shared by the HTTP router and tests."""

from __future__ import annotations

from typing import Any, Dict, Optional
from uuid import uuid4

from ..conversation import ConversationMachine
from ..error_messages import unknown_session_message
from ..models import utterance_text
from .estimate_service import EstimateServiceContext, ServiceError


def _get_machine(ctx: EstimateServiceContext, session_id: str) -> ConversationMachine:
    machine = ctx.conversations.get(session_id)
    if machine is None:
        raise ServiceError(unknown_session_message(session_id), status_code=404)
    return machine


def conversation_start(*, ctx: EstimateServiceContext, session_id: Optional[str] = None) -> Dict[str, Any]:
    sid = session_id or str(uuid4())
    machine = ConversationMachine(ctx.catalog, config=ctx.config, fixes=ctx.fixes)
    ctx.conversations[sid] = machine
    ctx.logger.info("Conversation %s started", sid)
    return {"session_id": sid, "step": machine.step.value, "prompt": machine.prompt, "done": False}


def conversation_input(*, session_id: str, payload: Dict[str, Any], ctx: EstimateServiceContext) -> Dict[str, Any]:
    """Feed one reply (``text`` or a speech-to-text ``speech`` result) into the session."""
    payload = payload or {}
    if payload.get("text") is None and payload.get("speech") is None:
        raise ServiceError("Ange 'text' eller 'speech'.", status_code=422)
    machine = _get_machine(ctx, session_id)
    text = payload["text"] if payload.get("text") is not None else utterance_text(payload["speech"])
    result = machine.process_input(text)
    response = result.to_dict()
    response["session_id"] = session_id
    response["line_items"] = len(machine.state.line_items)
    return response


def conversation_summary(*, session_id: str, ctx: EstimateServiceContext) -> Dict[str, Any]:
    machine = _get_machine(ctx, session_id)
    summary = machine.get_summary()
    summary["session_id"] = session_id
    summary["step"] = machine.step.value
    summary["estimate"] = machine.estimate().to_dict()
    if ctx.debug:
        summary["state"] = machine.state.to_dict()
    return summary
