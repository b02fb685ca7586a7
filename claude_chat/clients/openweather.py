"""OpenWeatherMap geocoding and current-conditions client."""

from dataclasses import dataclass
from typing import Any

import httpx

from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

OWM_BASE_URL = "https://api.openweathermap.org"


@dataclass(frozen=True)
class GeoLocation:
    """A geocoded place."""

    name: str
    lat: float
    lon: float
    state: str | None = None
    country: str | None = None

    @property
    def display_name(self) -> str:
        return ", ".join(part for part in (self.name, self.state, self.country) if part)


class OpenWeatherClient:
    """Two-step weather lookup: geocode a place name, then fetch conditions."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: str = OWM_BASE_URL):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    async def geocode(self, location: str, api_key: str) -> GeoLocation | None:
        """Resolve a free-form location to coordinates, or None if not found."""
        response = await self.http_client.get(
            f"{self.base_url}/geo/1.0/direct",
            params={"q": location, "limit": 1, "appid": api_key},
        )
        response.raise_for_status()

        results = response.json()
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            logger.info(f"No geocoding match for {location!r}")
            return None

        match = results[0]
        return GeoLocation(
            name=match.get("name") or location,
            lat=float(match["lat"]),
            lon=float(match["lon"]),
            state=match.get("state"),
            country=match.get("country"),
        )

    async def current(self, lat: float, lon: float, api_key: str) -> dict[str, Any]:
        """Fetch current conditions in imperial units."""
        response = await self.http_client.get(
            f"{self.base_url}/data/2.5/weather",
            params={"lat": lat, "lon": lon, "units": "imperial", "appid": api_key},
        )
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Weather response was not a JSON object")
        return payload
