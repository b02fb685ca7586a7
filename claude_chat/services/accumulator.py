"""Builds one model call's result from its stream of protocol events."""

import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from claude_chat.models.llm import StreamEvent, StreamResult, TextDelta, ToolCall
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

TEXT_BLOCK = "text"
TOOL_USE_BLOCK = "tool_use"


class StreamAccumulator:
    """State machine over content-block events.

    Idle -> InBlock(text | tool_use) -> Idle -> ... -> result(). Text deltas
    are surfaced as soon as they arrive; tool input is buffered until its
    block closes, since partial JSON is meaningless.
    """

    def __init__(self) -> None:
        self._text_parts: list[str] = []
        self._tool_calls: list[ToolCall] = []
        self._stop_reason: str | None = None
        self._input_tokens = 0
        self._output_tokens = 0

        self._block_type: str | None = None
        self._tool_id: str | None = None
        self._tool_name: str | None = None
        self._tool_input_parts: list[str] = []

    @property
    def in_block(self) -> str | None:
        """Kind of the block currently open, or None when idle."""
        return self._block_type

    def feed(self, event: StreamEvent) -> str | None:
        """Apply one event. Returns the text to emit, if the event carried any."""
        handler = getattr(self, f"_on_{event.type}", None)
        if handler is None:
            return None
        return handler(event.payload)

    def result(self) -> StreamResult:
        """Freeze what has been accumulated. An unclosed block is dropped."""
        if self._block_type is not None:
            logger.warning(f"Stream ended inside an open {self._block_type} block; discarding it")

        return StreamResult(
            text_content="".join(self._text_parts),
            tool_calls=tuple(self._tool_calls),
            # A stream that never declares a stop reason is treated as final
            stop_reason=self._stop_reason or "end_turn",
            input_tokens=self._input_tokens,
            output_tokens=self._output_tokens,
        )

    def _on_message_start(self, payload: dict[str, Any]) -> None:
        message = payload.get("message")
        usage = message.get("usage") if isinstance(message, dict) else None
        if isinstance(usage, dict) and isinstance(usage.get("input_tokens"), int):
            self._input_tokens = usage["input_tokens"]

    def _on_content_block_start(self, payload: dict[str, Any]) -> None:
        block = payload.get("content_block")
        if not isinstance(block, dict):
            return

        block_type = block.get("type")
        self._block_type = block_type if isinstance(block_type, str) else None
        self._tool_input_parts = []
        if block_type == TOOL_USE_BLOCK:
            self._tool_id = block.get("id")
            self._tool_name = block.get("name")

    def _on_content_block_delta(self, payload: dict[str, Any]) -> str | None:
        delta = payload.get("delta")
        if not isinstance(delta, dict):
            return None

        delta_type = delta.get("type")
        if self._block_type == TEXT_BLOCK and delta_type == "text_delta":
            text = delta.get("text")
            if isinstance(text, str) and text:
                self._text_parts.append(text)
                return text
        elif self._block_type == TOOL_USE_BLOCK and delta_type == "input_json_delta":
            partial = delta.get("partial_json")
            if isinstance(partial, str):
                self._tool_input_parts.append(partial)
        return None

    def _on_content_block_stop(self, payload: dict[str, Any]) -> None:
        if self._block_type == TOOL_USE_BLOCK and isinstance(self._tool_id, str) and isinstance(self._tool_name, str):
            tool_input = _parse_tool_input("".join(self._tool_input_parts))
            self._tool_calls.append(ToolCall(id=self._tool_id, name=self._tool_name, input=tool_input))
            logger.debug(f"Completed tool call {self._tool_name} ({self._tool_id})")

        self._block_type = None
        self._tool_id = None
        self._tool_name = None
        self._tool_input_parts = []

    def _on_message_delta(self, payload: dict[str, Any]) -> None:
        delta = payload.get("delta")
        if isinstance(delta, dict) and isinstance(delta.get("stop_reason"), str):
            self._stop_reason = delta["stop_reason"]

        usage = payload.get("usage")
        if isinstance(usage, dict) and isinstance(usage.get("output_tokens"), int):
            self._output_tokens = usage["output_tokens"]


def _parse_tool_input(raw: str) -> dict[str, Any]:
    """Parse accumulated tool input; anything but a JSON object becomes {}."""
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Malformed tool input JSON, substituting empty input: {raw[:100]}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


async def accumulate(events: AsyncIterable[StreamEvent]) -> AsyncIterator[TextDelta | StreamResult]:
    """Drain an event stream, yielding text deltas live and the StreamResult last."""
    accumulator = StreamAccumulator()
    async for event in events:
        text = accumulator.feed(event)
        if text is not None:
            yield TextDelta(text)
    yield accumulator.result()
