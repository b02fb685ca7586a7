"""Anthropic Messages API client: SSE streaming, single-shot calls and rate limiting."""

import asyncio
import json
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
import tiktoken
from anthropic import APIConnectionError, APIError, APIStatusError, AsyncAnthropic
from httpx_sse import aconnect_sse
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from claude_chat.clients.sse import parse_sse_events
from claude_chat.errors import AnthropicTransportError, MissingCredentialError
from claude_chat.models.catalog import ClaudeModel
from claude_chat.models.llm import APIMessage, StreamEvent
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    endpoint: str = "https://api.anthropic.com/v1/messages"
    api_version: str = "2023-06-01"
    max_tokens: int = 8192
    connect_timeout: float = 10.0
    read_timeout: float = 300.0

    # Single-shot calls only; streaming turns are never retried
    max_retries: int = 3
    retry_delay: float = 1.0

    max_conversation_tokens: int = 200_000
    token_headroom: int = 8192
    use_tiktoken: bool = True


@dataclass(frozen=True)
class SingleShotResult:
    """Text and usage from a non-streaming call."""

    text: str
    input_tokens: int
    output_tokens: int


class AnthropicRateLimiter:
    """Client-side request and token throttling using the limits library."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 400_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum estimated input tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within both windows."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_reset(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=max(1, estimated_tokens)):
            await self._wait_for_reset(self.token_limit, token_identifier, "Token")

    async def _wait_for_reset(self, limit, identifier: str, kind: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{kind} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


class AnthropicClient:
    """Low-level Messages API client.

    Streaming goes over raw HTTP so the SSE frames can be accumulated by
    `StreamAccumulator`; single-shot calls use the official SDK.
    """

    def __init__(
        self,
        config: AnthropicConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        rate_limiter: AnthropicRateLimiter | None = None,
        sdk_factory: Callable[[str], AsyncAnthropic] | None = None,
    ):
        """Initialize Anthropic client.

        Args:
            config: Client configuration
            http_client: Shared HTTP client for streaming requests
            rate_limiter: Client-side throttle, one per process by default
            sdk_factory: Builds an SDK client for an API key (single-shot calls)
        """
        self.config = config or AnthropicConfig()
        self.http_client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.read_timeout, connect=self.config.connect_timeout)
        )
        self.rate_limiter = rate_limiter or AnthropicRateLimiter()
        self._sdk_factory = sdk_factory or (lambda api_key: AsyncAnthropic(api_key=api_key, max_retries=0))
        self._sdk_clients: dict[str, AsyncAnthropic] = {}

        self.tokenizer: tiktoken.Encoding | None = None
        if self.config.use_tiktoken:
            try:
                # Close approximation for Claude
                self.tokenizer = tiktoken.get_encoding("cl100k_base")
            except Exception:
                self.tokenizer = None

    async def aclose(self) -> None:
        """Close the streaming HTTP client and any cached SDK clients."""
        await self.http_client.aclose()
        for sdk in self._sdk_clients.values():
            await sdk.close()
        self._sdk_clients.clear()

    def build_request_body(
        self,
        messages: list[APIMessage],
        system_prompt: str,
        model: ClaudeModel,
        tools: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Assemble the JSON body for a streaming Messages request."""
        body: dict[str, Any] = {
            "model": model.value,
            "max_tokens": self.config.max_tokens,
            "system": system_prompt,
            "messages": [message.model_dump() for message in messages],
            "stream": True,
        }
        if tools:
            body["tools"] = tools
        return body

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": self.config.api_version,
            "content-type": "application/json",
        }

    async def stream_events(
        self,
        messages: list[APIMessage],
        system_prompt: str,
        model: ClaudeModel,
        api_key: str | None,
        tools: list[dict[str, Any]] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Open one streaming call and yield its decoded SSE events.

        Raises:
            MissingCredentialError: If no API key is configured
            AnthropicTransportError: On network failure, timeout or non-2xx status
        """
        if not api_key:
            raise MissingCredentialError("Anthropic")

        body = self.build_request_body(messages, system_prompt, model, tools)
        estimated_tokens = self._estimate_tokens(messages, system_prompt)
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        logger.debug(
            f"Streaming {model.value} with {len(messages)} messages, {len(tools) if tools else 0} tools, "
            f"~{estimated_tokens} input tokens"
        )

        try:
            async with aconnect_sse(
                self.http_client, "POST", self.config.endpoint, json=body, headers=self._headers(api_key)
            ) as event_source:
                response = event_source.response
                if not response.is_success:
                    error_body = (await response.aread()).decode("utf-8", errors="replace")
                    logger.error(f"Messages API returned HTTP {response.status_code}")
                    raise AnthropicTransportError(_describe_error_body(error_body), status_code=response.status_code)

                async for event in parse_sse_events(event_source.aiter_sse()):
                    yield event
        except httpx.HTTPError as e:
            logger.error(f"Messages API connection failed: {type(e).__name__}")
            raise AnthropicTransportError(f"{type(e).__name__}: {e}") from e

    async def single_shot(
        self,
        messages: list[APIMessage],
        system_prompt: str,
        model: ClaudeModel,
        api_key: str | None,
        max_tokens: int = 256,
    ) -> SingleShotResult:
        """Non-streaming call returning the first text block."""
        if not api_key:
            raise MissingCredentialError("Anthropic")

        await self.rate_limiter.check_rate_limit(self._estimate_tokens(messages, system_prompt))

        sdk = self._sdk_clients.get(api_key)
        if sdk is None:
            sdk = self._sdk_clients[api_key] = self._sdk_factory(api_key)

        request_params = {
            "model": model.value,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": [message.model_dump() for message in messages],
        }

        logger.debug(f"Making single-shot call with model: {model.value}")
        try:
            response = await self._request_with_retries(lambda: sdk.messages.create(**request_params))
        except APIStatusError as e:
            raise AnthropicTransportError(str(e.message), status_code=e.status_code) from e
        except APIConnectionError as e:
            raise AnthropicTransportError(f"{type(e).__name__}: {e}") from e

        text = next((block.text for block in response.content if getattr(block, "type", None) == "text"), "")
        return SingleShotResult(
            text=text,
            input_tokens=response.usage.input_tokens if response.usage else 0,
            output_tokens=response.usage.output_tokens if response.usage else 0,
        )

    async def _request_with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        """Execute an SDK request, retrying rate limits and server errors."""
        for attempt in range(self.config.max_retries):
            try:
                return await call()

            except APIStatusError as e:
                if e.status_code == 429:
                    retry_after = 60
                    if e.response is not None:
                        try:
                            retry_after = int(e.response.headers.get("retry-after", 60))
                        except ValueError:
                            retry_after = 60

                    if retry_after < 120 and attempt < self.config.max_retries - 1:
                        logger.warning(f"Rate limited by API, retrying in {retry_after}s")
                        await asyncio.sleep(retry_after)
                        continue

                elif e.status_code >= 500 and attempt < self.config.max_retries - 1:
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue

                raise

            except APIError:
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise

        raise AnthropicTransportError(f"Failed to complete request after {self.config.max_retries} attempts")

    def _estimate_tokens(self, messages: list[APIMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt + "".join(_message_text(message) for message in messages)
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single string."""
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def truncate_history(
        self,
        messages: list[APIMessage],
        system_prompt: str,
        tools: list[dict[str, Any]] | None = None,
    ) -> list[APIMessage]:
        """Drop the oldest history messages that do not fit in the context window.

        The result never starts with an assistant message, which the API
        rejects.
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        available_tokens -= self.estimate_message_tokens(system_prompt)
        if tools:
            available_tokens -= self.estimate_message_tokens(json.dumps(tools))

        truncated: list[APIMessage] = []
        current_tokens = 0
        for message in reversed(messages):
            message_tokens = self.estimate_message_tokens(_message_text(message))
            if current_tokens + message_tokens > available_tokens:
                break
            truncated.insert(0, message)
            current_tokens += message_tokens

        while truncated and truncated[0].role == "assistant":
            truncated.pop(0)

        if len(truncated) < len(messages):
            logger.warning(
                f"Truncated history from {len(messages)} to {len(truncated)} messages "
                f"to fit within {available_tokens} token limit"
            )

        return truncated


def _message_text(message: APIMessage) -> str:
    if isinstance(message.content, str):
        return message.content
    parts = []
    for block in message.content:
        if block.type == "text":
            parts.append(block.text)
        elif block.type == "tool_use":
            parts.append(json.dumps(block.input))
        else:
            parts.append(block.content)
    return "".join(parts)


def _describe_error_body(body: str) -> str:
    """Pull the provider's error message out of a JSON error body."""
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return body.strip() or "empty response body"

    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        error_type = error.get("type", "error")
        return f"{error_type}: {error.get('message', '')}".strip()
    return body.strip()


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client() -> AnthropicClient:
    """Get or create Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AnthropicClient()
    return _anthropic_client


async def close_anthropic_client() -> None:
    """Close and forget the shared client, if one was created."""
    global _anthropic_client
    if _anthropic_client is not None:
        await _anthropic_client.aclose()
        _anthropic_client = None
