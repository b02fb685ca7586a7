"""Tools registry: which tools are offered, and routing calls to them."""

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

import httpx

from claude_chat.clients.openweather import OpenWeatherClient
from claude_chat.clients.tavily import TavilyClient
from claude_chat.models.llm import ToolCall, ToolResultRecord
from claude_chat.models.tool_input import ToolInput
from claude_chat.services.credentials import Credentials
from claude_chat.tools.base import ToolDefinition
from claude_chat.tools.datetime_tool import Clock, create_datetime_tool, system_clock
from claude_chat.tools.search_web import create_search_web_tool
from claude_chat.tools.weather import DEFAULT_LOCATION, create_weather_tool
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Registry and dispatcher for the assistant's local tools.

    Holds no per-turn state: availability is computed from the credential
    snapshot passed in, and independent calls may be dispatched concurrently.
    """

    def __init__(self, search_client: TavilyClient, weather_client: OpenWeatherClient, clock: Clock = system_clock):
        """Initialize tools registry with backend clients."""
        self.search_client = search_client
        self.weather_client = weather_client
        self.clock = clock
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the built-in tools."""
        tools = [
            create_datetime_tool(self.clock),
            create_search_web_tool(self.search_client),
            create_weather_tool(self.weather_client),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def available_tools(self, credentials: Credentials) -> list[ToolDefinition]:
        """Tools the model may be offered, given the configured credentials."""
        return [tool for tool in self._tools.values() if tool.is_available(credentials)]

    def get_api_tools(self, credentials: Credentials) -> list[dict[str, Any]]:
        """Available tools in Messages API `tools` format."""
        return [tool.to_api_schema() for tool in self.available_tools(credentials)]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    async def dispatch(self, name: str, tool_input: Mapping[str, Any] | None, credentials: Credentials) -> str:
        """Run a tool and return its textual result. Never raises.

        Unknown tools, missing credentials and backend failures all come back
        as descriptive text so the model can explain them.
        """
        tool = self._tools.get(name)
        if tool is None:
            logger.error(f"Unknown tool requested: {name}")
            return f"Unknown tool: {name}"

        if not tool.is_available(credentials):
            logger.warning(f"Tool {name} requested but its backend is not configured")
            return tool.unavailable_message or f"Tool {name} is not available."

        try:
            result = await tool.handler(ToolInput(tool_input), credentials)
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}", exc_info=True)
            return f"Error running {name}: {type(e).__name__}"

        logger.debug(f"Tool {name} returned: {result[:100]}")
        return result

    async def dispatch_all(self, calls: Iterable[ToolCall], credentials: Credentials) -> list[ToolResultRecord]:
        """Dispatch one round of calls concurrently; results keep request order."""
        calls = list(calls)
        contents = await asyncio.gather(*(self.dispatch(call.name, call.input, credentials) for call in calls))
        return [ToolResultRecord(tool_use_id=call.id, content=content) for call, content in zip(calls, contents)]

    async def aclose(self) -> None:
        """Close the HTTP clients behind the backend tools."""
        closed: list[httpx.AsyncClient] = []
        for backend in (self.search_client, self.weather_client):
            if not any(backend.http_client is seen for seen in closed):
                await backend.http_client.aclose()
                closed.append(backend.http_client)


def tool_activity_label(call: ToolCall) -> str:
    """Human-readable description of an in-flight tool call for the UI."""
    tool_input = ToolInput(call.input)
    match call.name:
        case "search_web":
            return f"🔍 Searching: {tool_input.get_str('query')}"
        case "get_weather":
            return f"🌤️ Getting weather for {tool_input.get_str('location') or DEFAULT_LOCATION}"
        case "get_datetime":
            return "🕐 Checking date/time"
        case _:
            return f"🔧 Using {call.name}"


def round_activity_label(calls: Iterable[ToolCall]) -> str:
    """One label covering every call of a round, since they run together."""
    return " · ".join(tool_activity_label(call) for call in calls)


_tools_registry: ToolsRegistry | None = None


def get_tools_registry(http_client: httpx.AsyncClient | None = None) -> ToolsRegistry:
    """Get or create tools registry instance."""
    global _tools_registry

    if _tools_registry is None:
        client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(20.0, connect=5.0))
        _tools_registry = ToolsRegistry(TavilyClient(client), OpenWeatherClient(client))

    return _tools_registry


async def close_tools_registry() -> None:
    """Close and forget the shared registry, if one was created."""
    global _tools_registry
    if _tools_registry is not None:
        await _tools_registry.aclose()
        _tools_registry = None
