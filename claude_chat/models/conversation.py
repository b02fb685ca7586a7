"""Conversation history and API request/response models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class HistoryTurn(BaseModel):
    """Simplified persisted form of a message: role plus final text."""

    role: Literal["user", "assistant"]
    text: str


class UsageSummary(BaseModel):
    """Token totals and cost for a completed turn."""

    input_tokens: int
    output_tokens: int
    cost_usd: float


class ConversationRequest(BaseModel):
    """Request model for conversation endpoints."""

    message: str
    session_id: str | None = None
    model: str | None = None


class ConversationResponse(BaseModel):
    """Response model for the conversation endpoint."""

    response: str
    session_id: str
    model: str
    usage: UsageSummary


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
    tools: list[str]
