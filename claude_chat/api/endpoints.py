"""API endpoints for the chat service."""

import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from claude_chat import __version__
from claude_chat.errors import AnthropicTransportError, ClaudeChatError, MissingCredentialError
from claude_chat.models.catalog import ClaudeModel
from claude_chat.models.conversation import ConversationRequest, ConversationResponse, HealthResponse, UsageSummary
from claude_chat.models.llm import TextDelta, ToolActivity, TurnCompleted, TurnResult
from claude_chat.services.conversation import ConversationService, get_conversation_service
from claude_chat.services.session_manager import InMemorySessionManager, Session, session_manager
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_session_manager() -> InMemorySessionManager:
    return session_manager


def parse_model(name: str | None) -> ClaudeModel | None:
    """None or "auto" means let the router decide."""
    if name is None or name.strip().lower() in ("", "auto"):
        return None
    return ClaudeModel.from_name(name)


def _resolve_session(request: ConversationRequest, sessions: InMemorySessionManager) -> Session | None:
    """Existing session for the request, or None when the turn starts a new one."""
    if not request.session_id:
        return None

    logger.info(f"Validating existing session: {request.session_id}")
    session = sessions.get_session(request.session_id)
    if not session:
        logger.warning(f"Invalid session ID provided: {request.session_id}")
        raise HTTPException(status_code=400, detail=f"Invalid session ID: {request.session_id}")
    return session


def _commit(sessions: InMemorySessionManager, session: Session | None, message: str, result: TurnResult) -> Session:
    """Record a completed turn, creating the session on a first turn."""
    if session is None:
        session = sessions.get_or_create_session()
        logger.info(f"Created session {session.session_id}")
    session.commit_turn(message, result)
    return session


def _validate_request(request: ConversationRequest) -> ClaudeModel | None:
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    try:
        return parse_model(request.model)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _usage_summary(result: TurnResult) -> UsageSummary:
    return UsageSummary(
        input_tokens=result.usage.input_tokens,
        output_tokens=result.usage.output_tokens,
        cost_usd=round(result.cost, 6),
    )


@router.post("/conversation", response_model=ConversationResponse, tags=["Conversation"])
async def handle_conversation(
    request: ConversationRequest,
    service: ConversationService = Depends(get_conversation_service),
    sessions: InMemorySessionManager = Depends(get_session_manager),
) -> ConversationResponse:
    """Run one user turn and return the final assistant reply.

    A request without a session_id gets a new session, created only once the
    turn has succeeded.
    """
    model = _validate_request(request)
    session = _resolve_session(request, sessions)
    label = request.session_id or "(new)"
    history = session.history if session else []

    try:
        logger.info(f"Processing message for session {label}: {request.message[:50]}...")
        result = await service.run_turn(history, request.message, model=model)
    except MissingCredentialError as e:
        logger.warning(f"Turn rejected for session {label}: {e}")
        raise HTTPException(status_code=503, detail=str(e)) from e
    except AnthropicTransportError as e:
        logger.error(f"Model backend failure for session {label}: {e}")
        raise HTTPException(status_code=502, detail=f"Model backend error: {e}") from e

    session = _commit(sessions, session, request.message, result)
    logger.info(f"Generated response for session {session.session_id}: {result.text[:50]}...")
    return ConversationResponse(
        response=result.text,
        session_id=session.session_id,
        model=result.model.value,
        usage=_usage_summary(result),
    )


def _sse_frame(payload: dict[str, Any] | str) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


@router.post("/conversation/stream", tags=["Conversation"])
async def stream_conversation(
    request: ConversationRequest,
    service: ConversationService = Depends(get_conversation_service),
    sessions: InMemorySessionManager = Depends(get_session_manager),
) -> StreamingResponse:
    """Run one user turn, streaming text and tool activity as server-sent events."""
    model = _validate_request(request)
    session = _resolve_session(request, sessions)
    history = session.history if session else []

    async def event_stream() -> AsyncIterator[str]:
        try:
            async with aclosing(service.stream_turn(history, request.message, model=model)) as events:
                async for event in events:
                    match event:
                        case TextDelta(text=text):
                            yield _sse_frame({"type": "text", "text": text})
                        case ToolActivity(label=label):
                            yield _sse_frame({"type": "tool_activity", "label": label})
                        case TurnCompleted(result=result):
                            committed = _commit(sessions, session, request.message, result)
                            yield _sse_frame(
                                {
                                    "type": "done",
                                    "session_id": committed.session_id,
                                    "response": result.text,
                                    "model": result.model.value,
                                    "iterations": result.iterations,
                                    "usage": _usage_summary(result).model_dump(),
                                }
                            )
        except ClaudeChatError as e:
            logger.error(f"Streaming turn failed for session {request.session_id or '(new)'}: {e}")
            yield _sse_frame({"type": "error", "session_id": request.session_id, "message": str(e)})
        yield _sse_frame("[DONE]")

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(service: ConversationService = Depends(get_conversation_service)) -> HealthResponse:
    """Health check endpoint, listing the tools currently offered to the model."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
        tools=[tool.name for tool in service.available_tools()],
    )
