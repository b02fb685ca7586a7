"""Tests for the tools registry and the built-in tools."""

import asyncio
import json
from datetime import UTC, datetime

import httpx
import pytest

from claude_chat.clients.openweather import OpenWeatherClient
from claude_chat.clients.tavily import TavilyClient
from claude_chat.models.llm import ToolCall, ToolResultRecord
from claude_chat.services.credentials import Backend, Credentials
from claude_chat.tools.base import EmptyInput, ToolDefinition
from claude_chat.tools.datetime_tool import format_datetime
from claude_chat.tools.registry import ToolsRegistry, round_activity_label, tool_activity_label
from claude_chat.tools.search_web import format_search_digest
from claude_chat.tools.weather import DEFAULT_LOCATION, resolve_location

FIXED_NOW = datetime(2026, 10, 18, 18, 5, 42, tzinfo=UTC)

ALL_KEYS = Credentials(
    keys={Backend.ANTHROPIC: "sk-test", Backend.TAVILY: "tvly-key", Backend.OPENWEATHERMAP: "owm-key"}
)
NO_KEYS = Credentials()

GEOCODE_MATCH = [{"name": "Catonsville", "lat": 39.27, "lon": -76.73, "state": "Maryland", "country": "US"}]
WEATHER_PAYLOAD = {
    "weather": [{"main": "Clouds", "description": "overcast clouds"}],
    "main": {"temp": 44.2, "feels_like": 40.1, "temp_min": 41.0, "temp_max": 47.6, "humidity": 72},
    "wind": {"speed": 5.8},
}


def build_registry(handler=None) -> ToolsRegistry:
    """Registry whose backends talk to an in-process mock transport."""
    handler = handler or (lambda request: httpx.Response(500))
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ToolsRegistry(TavilyClient(http_client), OpenWeatherClient(http_client), clock=lambda: FIXED_NOW)


def weather_backend(geocode=GEOCODE_MATCH, weather=WEATHER_PAYLOAD, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if request.url.path == "/geo/1.0/direct":
            return httpx.Response(200, json=geocode)
        if request.url.path == "/data/2.5/weather":
            return httpx.Response(200, json=weather)
        return httpx.Response(404)

    return handler


class TestToolAvailability:
    """Tests for credential-gated tool offering."""

    def test_datetime_only_without_keys(self):
        """Test that only get_datetime is offered with no backend keys."""
        registry = build_registry()

        assert [tool.name for tool in registry.available_tools(NO_KEYS)] == ["get_datetime"]

    def test_all_tools_with_all_keys(self):
        """Test that every tool is offered when every key is configured."""
        registry = build_registry()

        assert [tool.name for tool in registry.available_tools(ALL_KEYS)] == [
            "get_datetime",
            "search_web",
            "get_weather",
        ]

    def test_each_backend_gates_its_own_tool(self):
        """Test that a key enables exactly the tool that needs it."""
        registry = build_registry()

        tavily_only = Credentials(keys={Backend.TAVILY: "tvly-key"})
        weather_only = Credentials(keys={Backend.OPENWEATHERMAP: "owm-key"})

        assert [tool.name for tool in registry.available_tools(tavily_only)] == ["get_datetime", "search_web"]
        assert [tool.name for tool in registry.available_tools(weather_only)] == ["get_datetime", "get_weather"]

    def test_api_schema_shape(self):
        """Test that tools are exported in Messages API format."""
        registry = build_registry()

        schemas = {schema["name"]: schema for schema in registry.get_api_tools(ALL_KEYS)}

        assert schemas["get_datetime"]["input_schema"] == {"type": "object", "properties": {}, "required": []}
        search_schema = schemas["search_web"]["input_schema"]
        assert search_schema["type"] == "object"
        assert search_schema["required"] == ["query"]
        assert search_schema["properties"]["query"]["type"] == "string"
        assert "title" not in search_schema
        assert schemas["get_weather"]["input_schema"]["required"] == ["location"]

    def test_registered_names(self):
        """Test registry lookups by name."""
        registry = build_registry()

        assert registry.get_tool_names() == ["get_datetime", "search_web", "get_weather"]
        assert registry.has_tool("get_weather")
        assert not registry.has_tool("get_stock_price")


class TestDispatch:
    """Tests that dispatch always returns text."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        """Test that an unknown tool name becomes a descriptive result."""
        registry = build_registry()

        assert await registry.dispatch("launch_rocket", {}, ALL_KEYS) == "Unknown tool: launch_rocket"

    @pytest.mark.asyncio
    async def test_missing_credential(self):
        """Test that a tool without its key reports unavailability instead of calling out."""
        requests = []
        registry = build_registry(lambda request: requests.append(request) or httpx.Response(200, json={}))

        search = await registry.dispatch("search_web", {"query": "news"}, NO_KEYS)
        weather = await registry.dispatch("get_weather", {"location": "Paris"}, NO_KEYS)

        assert search == "Web search is not available: no Tavily API key is configured."
        assert weather == "Weather is not available: no OpenWeatherMap API key is configured."
        assert requests == []

    @pytest.mark.asyncio
    async def test_handler_exception_is_captured(self):
        """Test that an exception escaping a handler becomes an error string."""
        registry = build_registry()

        async def exploding_handler(tool_input, credentials):
            raise RuntimeError("kaboom")

        registry.register_tool(
            ToolDefinition(
                name="explode",
                description="Always fails",
                input_schema_class=EmptyInput,
                handler=exploding_handler,
            )
        )

        assert await registry.dispatch("explode", {}, ALL_KEYS) == "Error running explode: RuntimeError"

    @pytest.mark.asyncio
    async def test_dispatch_all_keeps_request_order(self):
        """Test that concurrent results come back in the order the calls were made."""
        registry = build_registry()

        def sleeper(name: str, delay: float):
            async def handler(tool_input, credentials):
                await asyncio.sleep(delay)
                return f"{name} done"

            return ToolDefinition(name=name, description=name, input_schema_class=EmptyInput, handler=handler)

        registry.register_tool(sleeper("slow", 0.05))
        registry.register_tool(sleeper("fast", 0.0))

        records = await registry.dispatch_all(
            [ToolCall(id="toolu_1", name="slow"), ToolCall(id="toolu_2", name="fast")], ALL_KEYS
        )

        assert records == [
            ToolResultRecord(tool_use_id="toolu_1", content="slow done"),
            ToolResultRecord(tool_use_id="toolu_2", content="fast done"),
        ]


class TestDatetimeTool:
    """Tests for get_datetime."""

    def test_format_in_daylight_time(self):
        """Test formatting of a summer-time instant in Eastern time."""
        assert format_datetime(FIXED_NOW) == "Current date and time: Sunday, October 18, 2026 2:05 PM (EDT)"

    def test_format_in_standard_time(self):
        """Test formatting of a winter instant in Eastern time."""
        winter = datetime(2026, 1, 5, 15, 30, tzinfo=UTC)

        assert format_datetime(winter) == "Current date and time: Monday, January 5, 2026 10:30 AM (EST)"

    def test_midnight_renders_as_twelve(self):
        """Test that hour zero renders as 12 AM."""
        midnight = datetime(2026, 10, 18, 4, 0, tzinfo=UTC)

        assert format_datetime(midnight).endswith("12:00 AM (EDT)")

    @pytest.mark.asyncio
    async def test_repeated_calls_are_identical(self):
        """Test that the tool is idempotent for a fixed clock."""
        registry = build_registry()

        first = await registry.dispatch("get_datetime", {}, NO_KEYS)
        second = await registry.dispatch("get_datetime", {"ignored": True}, NO_KEYS)

        assert first == second == format_datetime(FIXED_NOW)


class TestSearchWebTool:
    """Tests for search_web."""

    @pytest.mark.asyncio
    async def test_search_request_and_digest(self):
        """Test the Tavily request body and the digest built from its answer."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "answer": "Python is a programming language.",
                    "results": [{"title": "Python", "url": "https://python.org", "content": "Official site"}],
                },
            )

        registry = build_registry(handler)

        result = await registry.dispatch("search_web", {"query": "  what is python "}, ALL_KEYS)

        assert result == (
            "[Summary] Python is a programming language.\n\n[1] Python\nURL: https://python.org\nOfficial site\n"
        )
        assert len(seen) == 1
        assert json.loads(seen[0].content) == {
            "api_key": "tvly-key",
            "query": "what is python",
            "search_depth": "advanced",
            "include_answer": True,
            "max_results": 6,
        }

    @pytest.mark.asyncio
    async def test_empty_query(self):
        """Test that a blank query is rejected without a request."""
        seen = []
        registry = build_registry(lambda request: seen.append(request) or httpx.Response(200, json={}))

        assert await registry.dispatch("search_web", {"query": "   "}, ALL_KEYS) == "No search query provided."
        assert await registry.dispatch("search_web", {"query": 42}, ALL_KEYS) == "No search query provided."
        assert seen == []

    @pytest.mark.asyncio
    async def test_http_failure(self):
        """Test that a non-2xx search response is reported with its status."""
        registry = build_registry(lambda request: httpx.Response(432, json={"detail": "bad key"}))

        assert await registry.dispatch("search_web", {"query": "news"}, ALL_KEYS) == "Search failed with HTTP 432"

    @pytest.mark.asyncio
    async def test_network_failure(self):
        """Test that a network error is reported as a search error."""

        def handler(request):
            raise httpx.ConnectError("connection refused")

        registry = build_registry(handler)

        result = await registry.dispatch("search_web", {"query": "news"}, ALL_KEYS)

        assert result.startswith("Search error: ConnectError")

    def test_digest_limits_results_and_snippets(self):
        """Test that at most six results are shown and long snippets are cut."""
        payload = {
            "results": [
                {"title": f"Result {index}", "url": f"https://example.com/{index}", "content": "x" * 600}
                for index in range(1, 9)
            ]
        }

        digest = format_search_digest(payload)

        assert "[6] Result 6" in digest
        assert "[7]" not in digest
        assert "x" * 500 + "..." in digest
        assert "x" * 501 not in digest
        assert "[Summary]" not in digest

    def test_digest_without_results(self):
        """Test the fallback text for an empty response."""
        assert format_search_digest({}) == "No search results found."
        assert format_search_digest({"answer": "  ", "results": []}) == "No search results found."


class TestWeatherTool:
    """Tests for get_weather."""

    @pytest.mark.parametrize("raw", ["", "   ", "none", "NULL", "default", "here"])
    def test_placeholder_locations_resolve_to_default(self, raw):
        """Test that empty and placeholder locations use the default."""
        assert resolve_location(raw) == DEFAULT_LOCATION

    def test_real_location_is_kept(self):
        """Test that a real place name passes through trimmed."""
        assert resolve_location("  Paris, France ") == "Paris, France"

    @pytest.mark.asyncio
    async def test_default_location_lookup_and_format(self):
        """Test the two-step lookup for an empty location and the formatted summary."""
        seen = []
        registry = build_registry(weather_backend(seen=seen))

        result = await registry.dispatch("get_weather", {"location": ""}, ALL_KEYS)

        assert result == (
            "Current Weather for Catonsville, Maryland, US:\n"
            "• Conditions: Overcast clouds\n"
            "• Temperature: 44.2°F (feels like 40.1°F)\n"
            "• High: 48°F / Low: 41°F\n"
            "• Humidity: 72%\n"
            "• Wind Speed: 5.8 mph"
        )
        geocode_request, weather_request = seen
        assert geocode_request.url.params["q"] == "Catonsville, Maryland"
        assert geocode_request.url.params["appid"] == "owm-key"
        assert weather_request.url.params["units"] == "imperial"
        assert weather_request.url.params["lat"] == "39.27"

    @pytest.mark.asyncio
    async def test_missing_input_uses_default(self):
        """Test that a call with no input map at all still resolves the default location."""
        seen = []
        registry = build_registry(weather_backend(seen=seen))

        await registry.dispatch("get_weather", None, ALL_KEYS)

        assert seen[0].url.params["q"] == DEFAULT_LOCATION

    @pytest.mark.asyncio
    async def test_unknown_location(self):
        """Test that an empty geocoding result is reported."""
        registry = build_registry(weather_backend(geocode=[]))

        result = await registry.dispatch("get_weather", {"location": "Atlantis"}, ALL_KEYS)

        assert result == "Could not find location: Atlantis"

    @pytest.mark.asyncio
    async def test_http_failure(self):
        """Test that a non-2xx weather response is reported with its status."""
        registry = build_registry(lambda request: httpx.Response(401, json={"message": "Invalid API key"}))

        result = await registry.dispatch("get_weather", {"location": "Paris"}, ALL_KEYS)

        assert result == "Weather lookup failed with HTTP 401"

    @pytest.mark.asyncio
    async def test_network_failure_does_not_leak_key(self):
        """Test that a network error is reported without echoing the request URL."""

        def handler(request):
            raise httpx.ConnectError(f"could not connect to {request.url}")

        registry = build_registry(handler)

        result = await registry.dispatch("get_weather", {"location": "Paris"}, ALL_KEYS)

        assert result == "Weather lookup error: ConnectError"
        assert "owm-key" not in result

    @pytest.mark.asyncio
    async def test_sparse_payload_still_formats(self):
        """Test that missing optional fields fall back to defaults."""
        registry = build_registry(weather_backend(weather={"main": {"temp": 70}}))

        result = await registry.dispatch("get_weather", {"location": "Paris"}, ALL_KEYS)

        assert "• Conditions: Unknown" in result
        assert "• Temperature: 70.0°F (feels like 70.0°F)" in result
        assert "High:" not in result


class TestToolActivityLabel:
    """Tests for the UI labels of in-flight tool calls."""

    def test_labels(self):
        """Test the label for each known tool and the generic fallback."""
        assert tool_activity_label(ToolCall("t", "search_web", {"query": "python"})) == "🔍 Searching: python"
        assert tool_activity_label(ToolCall("t", "get_weather", {"location": "Paris"})) == (
            "🌤️ Getting weather for Paris"
        )
        default_label = f"🌤️ Getting weather for {DEFAULT_LOCATION}"
        assert tool_activity_label(ToolCall("t", "get_weather", {})) == default_label
        assert tool_activity_label(ToolCall("t", "get_datetime")) == "🕐 Checking date/time"
        assert tool_activity_label(ToolCall("t", "custom")) == "🔧 Using custom"

    def test_round_label_covers_every_call(self):
        """Test that a round of parallel calls is described by one combined label."""
        calls = [
            ToolCall("a", "search_web", {"query": "python"}),
            ToolCall("b", "get_datetime"),
        ]

        assert round_activity_label(calls) == "🔍 Searching: python · 🕐 Checking date/time"
        assert round_activity_label(calls[1:]) == "🕐 Checking date/time"


class TestRegistryClose:
    """Tests for releasing the backend HTTP clients."""

    @pytest.mark.asyncio
    async def test_shared_client_closed(self):
        """Test that the client shared by both backends is closed."""
        registry = build_registry()

        await registry.aclose()

        assert registry.search_client.http_client.is_closed

    @pytest.mark.asyncio
    async def test_separate_clients_both_closed(self):
        """Test that backends with their own clients each get closed."""
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        search_http = httpx.AsyncClient(transport=transport)
        weather_http = httpx.AsyncClient(transport=transport)
        registry = ToolsRegistry(TavilyClient(search_http), OpenWeatherClient(weather_http))

        await registry.aclose()

        assert search_http.is_closed
        assert weather_http.is_closed

    @pytest.mark.asyncio
    async def test_close_shared_registry_resets_singleton(self, monkeypatch):
        """Test that closing the shared registry forgets it."""
        from claude_chat.tools import registry as registry_module

        shared = build_registry()
        monkeypatch.setattr(registry_module, "_tools_registry", shared)

        await registry_module.close_tools_registry()

        assert shared.weather_client.http_client.is_closed
        assert registry_module._tools_registry is None
