"""Current weather tool backed by OpenWeatherMap."""

from typing import Any

import httpx
from pydantic import BaseModel, Field

from claude_chat.clients.openweather import GeoLocation, OpenWeatherClient
from claude_chat.models.tool_input import ToolInput
from claude_chat.services.credentials import Backend, Credentials
from claude_chat.tools.base import ToolDefinition
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LOCATION = "Catonsville, Maryland"
_PLACEHOLDER_LOCATIONS = {"", "none", "null", "default", "here"}


class WeatherInput(BaseModel):
    """Input schema for the weather tool."""

    location: str = Field(
        ...,
        description="The location to get weather for (city, state, country). Leave empty for the default location.",
    )


def resolve_location(raw: str) -> str:
    """Map empty or placeholder locations to the default one."""
    location = raw.strip()
    return DEFAULT_LOCATION if location.lower() in _PLACEHOLDER_LOCATIONS else location


def format_weather(place: GeoLocation, payload: dict[str, Any]) -> str:
    """Build the multi-line summary returned to the model."""
    main = payload.get("main") if isinstance(payload.get("main"), dict) else {}
    wind = payload.get("wind") if isinstance(payload.get("wind"), dict) else {}
    weather = payload.get("weather")
    conditions = "Unknown"
    if isinstance(weather, list) and weather and isinstance(weather[0], dict):
        conditions = str(weather[0].get("description") or weather[0].get("main") or "Unknown").capitalize()

    temp = float(main.get("temp", 0.0))
    feels_like = float(main.get("feels_like", temp))

    lines = [
        f"Current Weather for {place.display_name}:",
        f"• Conditions: {conditions}",
        f"• Temperature: {temp:.1f}°F (feels like {feels_like:.1f}°F)",
    ]
    if "temp_max" in main and "temp_min" in main:
        lines.append(f"• High: {float(main['temp_max']):.0f}°F / Low: {float(main['temp_min']):.0f}°F")
    lines.append(f"• Humidity: {int(main.get('humidity', 0))}%")
    lines.append(f"• Wind Speed: {float(wind.get('speed', 0.0)):.1f} mph")
    return "\n".join(lines)


def create_weather_tool(weather_client: OpenWeatherClient) -> ToolDefinition:
    async def get_weather_handler(tool_input: ToolInput, credentials: Credentials) -> str:
        api_key = credentials.get_key(Backend.OPENWEATHERMAP)
        if not api_key:
            return "Weather is not available: no OpenWeatherMap API key is configured."

        location = resolve_location(tool_input.get_str("location"))
        logger.info(f"Getting weather for: {location}")

        try:
            place = await weather_client.geocode(location, api_key)
            if place is None:
                return f"Could not find location: {location}"
            payload = await weather_client.current(place.lat, place.lon, api_key)
        except httpx.HTTPStatusError as e:
            return f"Weather lookup failed with HTTP {e.response.status_code}"
        except httpx.HTTPError as e:
            # httpx messages can echo the request URL, which carries the key
            return f"Weather lookup error: {type(e).__name__}"
        except (ValueError, KeyError) as e:
            return f"Weather lookup error: unexpected response ({type(e).__name__})"

        return format_weather(place, payload)

    return ToolDefinition(
        name="get_weather",
        description=(
            "Get current weather information for a specific location. "
            f"Defaults to {DEFAULT_LOCATION} if no location is specified."
        ),
        input_schema_class=WeatherInput,
        handler=get_weather_handler,
        backend=Backend.OPENWEATHERMAP,
        unavailable_message="Weather is not available: no OpenWeatherMap API key is configured.",
    )
