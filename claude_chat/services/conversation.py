"""Conversation loop: one user turn as a bounded stream-then-run-tools cycle."""

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import aclosing

from claude_chat.clients.anthropic import AnthropicClient, close_anthropic_client, get_anthropic_client
from claude_chat.errors import ClaudeChatError
from claude_chat.models.catalog import DEFAULT_MODEL, ClaudeModel
from claude_chat.models.conversation import HistoryTurn
from claude_chat.models.llm import (
    APIMessage,
    ContentBlock,
    StreamResult,
    TextBlock,
    TextDelta,
    ToolActivity,
    TurnCompleted,
    TurnEvent,
    TurnResult,
    TurnUsage,
)
from claude_chat.prompts import get_system_prompt
from claude_chat.services.accumulator import accumulate
from claude_chat.services.credentials import Backend, CredentialStore, Credentials, InMemoryCredentialStore
from claude_chat.services.router import ModelRouter, collect_tips, extract_tip, strip_tips
from claude_chat.tools.base import ToolDefinition
from claude_chat.tools.registry import ToolsRegistry, close_tools_registry, get_tools_registry, round_activity_label
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

MAX_ITERATIONS = 5
ROUND_SEPARATOR = "\n\n"

ChunkCallback = Callable[[str], Awaitable[None] | None]
ToolActivityCallback = Callable[[str | None], Awaitable[None] | None]


class ConversationService:
    """Runs user turns against the model, executing requested tools in between.

    Each turn makes at most `max_iterations` streamed model calls. The
    API-visible message list is built fresh per turn and owned by the turn
    until it completes; only the final text and token totals leave it.
    """

    def __init__(
        self,
        client: AnthropicClient,
        tools_registry: ToolsRegistry,
        credential_store: CredentialStore,
        router: ModelRouter | None = None,
        max_iterations: int = MAX_ITERATIONS,
        default_model: ClaudeModel = DEFAULT_MODEL,
    ):
        """Initialize conversation service.

        Args:
            client: Messages API client
            tools_registry: Tool definitions and dispatcher
            credential_store: Source of backend API keys, snapshotted per turn
            router: Picks a model when a turn doesn't name one
            max_iterations: Upper bound on streamed calls per turn
            default_model: Model used when there is neither a choice nor a router
        """
        self.client = client
        self.tools_registry = tools_registry
        self.credential_store = credential_store
        self.router = router
        self.max_iterations = max_iterations
        self.default_model = default_model

    def available_tools(self) -> list[ToolDefinition]:
        """Tools that would be offered if a turn started now."""
        return self.tools_registry.available_tools(Credentials.from_store(self.credential_store))

    def build_messages(
        self,
        history: Sequence[HistoryTurn],
        user_text: str,
        system_prompt: str,
        tools: list[dict] | None = None,
    ) -> list[APIMessage]:
        """Seed the API message list from history plus the new user message."""
        seeded = [
            APIMessage(role=turn.role, content=strip_tips(turn.text) if turn.role == "assistant" else turn.text)
            for turn in history
            if turn.text.strip()
        ]
        seeded = self.client.truncate_history(seeded, system_prompt, tools)
        return [*seeded, APIMessage(role="user", content=user_text)]

    async def select_model(
        self, history: Sequence[HistoryTurn], user_text: str, model: ClaudeModel | None, credentials: Credentials
    ) -> ClaudeModel:
        if model is not None:
            return model
        if self.router is None:
            return self.default_model
        return await self.router.classify(user_text, collect_tips(history), credentials.get_key(Backend.ANTHROPIC))

    async def stream_turn(
        self,
        history: Sequence[HistoryTurn],
        user_text: str,
        model: ClaudeModel | None = None,
        system_prompt: str | None = None,
    ) -> AsyncIterator[TurnEvent]:
        """Run one turn, yielding text deltas and tool activity as they happen.

        The last event is a TurnCompleted. A transport failure raises out of
        the iterator instead, and closing the iterator early abandons the
        turn and its open connection without producing a result.
        """
        system_prompt = system_prompt or get_system_prompt()
        credentials = Credentials.from_store(self.credential_store)
        api_key = credentials.get_key(Backend.ANTHROPIC)

        model = await self.select_model(history, user_text, model, credentials)
        tools = self.tools_registry.get_api_tools(credentials)
        messages = self.build_messages(history, user_text, system_prompt, tools)

        logger.info(
            f"Starting turn with {len(messages)} messages, {len(tools)} tools, model {model.display_name}, "
            f"max_iterations: {self.max_iterations}"
        )

        usage = TurnUsage()
        text_parts: list[str] = []
        iterations = 0
        tools_executed = 0
        bound_reached = False

        while True:
            iterations += 1
            logger.debug(f"Turn iteration {iterations}/{self.max_iterations}")

            result: StreamResult | None = None
            async with (
                aclosing(self.client.stream_events(messages, system_prompt, model, api_key, tools)) as events,
                aclosing(accumulate(events)) as stream,
            ):
                async for item in stream:
                    if isinstance(item, TextDelta):
                        text_parts.append(item.text)
                        yield item
                    else:
                        result = item

            if result is None:
                raise ClaudeChatError("Model stream ended without a result")

            usage.add(result)
            logger.debug(
                f"Iteration {iterations} stop reason: {result.stop_reason}, tool calls: {len(result.tool_calls)}"
            )

            if not result.wants_tools:
                break

            # The provider validates that each tool_result follows its exact tool_use
            assistant_content: list[ContentBlock] = []
            if result.text_content:
                assistant_content.append(TextBlock(text=result.text_content))
            assistant_content.extend(call.to_block() for call in result.tool_calls)
            messages.append(APIMessage(role="assistant", content=assistant_content))

            logger.info(f"Model requested {len(result.tool_calls)} tools: {[call.name for call in result.tool_calls]}")
            yield ToolActivity(round_activity_label(result.tool_calls))

            records = await self.tools_registry.dispatch_all(result.tool_calls, credentials)
            tools_executed += len(records)
            messages.append(APIMessage(role="user", content=[record.to_block() for record in records]))
            yield ToolActivity(None)

            if iterations >= self.max_iterations:
                bound_reached = True
                break

            if text_parts:
                text_parts.append(ROUND_SEPARATOR)
                yield TextDelta(ROUND_SEPARATOR)

        if bound_reached:
            logger.warning(f"Turn reached max iterations ({self.max_iterations}); finalizing with text so far")

        text, tip = extract_tip("".join(text_parts))
        logger.info(
            f"Turn completed in {iterations} iterations - Input: {usage.input_tokens}, "
            f"Output: {usage.output_tokens}, tools executed: {tools_executed}"
        )
        yield TurnCompleted(
            TurnResult(
                text=text,
                usage=usage,
                model=model,
                iterations=iterations,
                tool_calls_executed=tools_executed,
                tip=tip,
            )
        )

    async def run_turn(
        self,
        history: Sequence[HistoryTurn],
        user_text: str,
        model: ClaudeModel | None = None,
        system_prompt: str | None = None,
        on_chunk: ChunkCallback | None = None,
        on_tool_activity: ToolActivityCallback | None = None,
    ) -> TurnResult:
        """Run one turn to completion, reporting progress through callbacks.

        Raises:
            AnthropicTransportError: If any streamed call fails
        """
        completed: TurnResult | None = None
        async with aclosing(self.stream_turn(history, user_text, model, system_prompt)) as events:
            async for event in events:
                match event:
                    case TextDelta(text=text):
                        await _notify(on_chunk, text)
                    case ToolActivity(label=label):
                        await _notify(on_tool_activity, label)
                    case TurnCompleted(result=result):
                        completed = result

        if completed is None:
            raise ClaudeChatError("Turn ended without a result")
        return completed


async def _notify(callback: Callable | None, value) -> None:
    if callback is None:
        return
    outcome = callback(value)
    if inspect.isawaitable(outcome):
        await outcome


_conversation_service: ConversationService | None = None


def get_conversation_service() -> ConversationService:
    """Get or create the conversation service with default collaborators."""
    global _conversation_service
    if _conversation_service is None:
        client = get_anthropic_client()
        _conversation_service = ConversationService(
            client=client,
            tools_registry=get_tools_registry(),
            credential_store=InMemoryCredentialStore(),
            router=ModelRouter(client),
        )
    return _conversation_service


async def close_conversation_service() -> None:
    """Release the shared service and the HTTP clients behind it."""
    global _conversation_service
    _conversation_service = None
    await close_anthropic_client()
    await close_tools_registry()
