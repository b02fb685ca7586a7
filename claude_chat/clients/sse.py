"""Messages API event decoding on top of httpx-sse framing."""

import json
from collections.abc import AsyncIterable, AsyncIterator

from httpx_sse import ServerSentEvent

from claude_chat.models.llm import StreamEvent
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

DONE_SENTINEL = "[DONE]"


def decode_event(sse: ServerSentEvent) -> StreamEvent | None:
    """Decode one server-sent event's data into a protocol event, or None if it carries none."""
    data = sse.data.strip()
    if not data:
        return None

    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Skipping malformed SSE frame: {data[:100]}")
        return None

    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        logger.debug(f"Skipping SSE frame without a type: {data[:100]}")
        return None

    return StreamEvent(type=payload["type"], payload=payload)


async def parse_sse_events(events: AsyncIterable[ServerSentEvent]) -> AsyncIterator[StreamEvent]:
    """Turn framed server-sent events into decoded protocol events.

    The `[DONE]` sentinel ends the sequence. Corrupt frames are skipped;
    errors raised by `events` itself propagate to the caller.
    """
    async for sse in events:
        if sse.data.strip() == DONE_SENTINEL:
            logger.debug("Received end-of-stream sentinel")
            return

        event = decode_event(sse)
        if event is not None:
            yield event
