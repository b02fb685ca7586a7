"""Wire-level and per-turn data models for the Messages API."""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

from claude_chat.models.catalog import ClaudeModel, estimate_cost


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str

    class Config:
        extra = "ignore"


class ToolUseBlock(BaseModel):
    """Tool use content block, replayed verbatim to the API before its results."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]

    class Config:
        extra = "ignore"


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    class Config:
        extra = "ignore"


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class APIMessage(BaseModel):
    """A message in the API-visible conversation.

    Tool results travel as a user-role message whose content is a list of
    ToolResultBlock.
    """

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


@dataclass(frozen=True)
class StreamEvent:
    """One decoded SSE frame: the `type` discriminator plus the raw payload."""

    type: str
    payload: dict[str, Any]


@dataclass(frozen=True)
class ToolCall:
    """A completed tool call request from one streamed model response."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    def to_block(self) -> ToolUseBlock:
        return ToolUseBlock(id=self.id, name=self.name, input=self.input)


@dataclass(frozen=True)
class ToolResultRecord:
    """Textual outcome of one tool call. Failures are encoded in `content`."""

    tool_use_id: str
    content: str

    def to_block(self) -> ToolResultBlock:
        return ToolResultBlock(tool_use_id=self.tool_use_id, content=self.content)


@dataclass(frozen=True)
class StreamResult:
    """Aggregate of one streamed model call."""

    text_content: str
    tool_calls: tuple[ToolCall, ...]
    stop_reason: str
    input_tokens: int
    output_tokens: int

    @property
    def wants_tools(self) -> bool:
        return self.stop_reason != "end_turn" and len(self.tool_calls) > 0


@dataclass
class TurnUsage:
    """Token usage summed across every streamed call of a turn."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, result: StreamResult) -> None:
        self.input_tokens += result.input_tokens
        self.output_tokens += result.output_tokens

    def cost(self, model: ClaudeModel) -> float:
        """Cost in USD at the model's list price."""
        return estimate_cost(model, self.input_tokens, self.output_tokens)


@dataclass(frozen=True)
class TurnResult:
    """Final outcome of one user turn, handed to the history collaborator."""

    text: str
    usage: TurnUsage
    model: ClaudeModel
    iterations: int
    tool_calls_executed: int = 0
    tip: str | None = None

    @property
    def cost(self) -> float:
        return self.usage.cost(self.model)


# Events yielded while a turn is in flight
@dataclass(frozen=True)
class TextDelta:
    """Incremental assistant text for live display."""

    text: str


@dataclass(frozen=True)
class ToolActivity:
    """Label for the tool call in flight; None once the round has finished."""

    label: str | None


@dataclass(frozen=True)
class TurnCompleted:
    """Terminal event carrying the finished turn."""

    result: TurnResult


TurnEvent = TextDelta | ToolActivity | TurnCompleted
