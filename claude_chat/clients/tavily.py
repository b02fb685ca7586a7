"""Tavily web search client."""

from typing import Any

import httpx

from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

TAVILY_SEARCH_URL = "https://api.tavily.com/search"


class TavilyClient:
    """Single-call wrapper around the Tavily search endpoint."""

    def __init__(self, http_client: httpx.AsyncClient, url: str = TAVILY_SEARCH_URL, max_results: int = 6):
        self.http_client = http_client
        self.url = url
        self.max_results = max_results

    async def search(self, query: str, api_key: str) -> dict[str, Any]:
        """Run one advanced search with an AI answer.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response
            httpx.HTTPError: On network failure
            ValueError: If the body is not a JSON object
        """
        logger.debug(f"Tavily search: {query}")
        response = await self.http_client.post(
            self.url,
            json={
                "api_key": api_key,
                "query": query,
                "search_depth": "advanced",
                "include_answer": True,
                "max_results": self.max_results,
            },
        )
        response.raise_for_status()

        payload = response.json()
        if not isinstance(payload, dict):
            raise ValueError("Search response was not a JSON object")
        return payload
