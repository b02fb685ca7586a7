"""Web search tool backed by Tavily."""

from typing import Any

import httpx
from pydantic import BaseModel, Field

from claude_chat.clients.tavily import TavilyClient
from claude_chat.models.tool_input import ToolInput
from claude_chat.services.credentials import Backend, Credentials
from claude_chat.tools.base import ToolDefinition
from claude_chat.utils.logging import get_logger

logger = get_logger(__name__)

MAX_RESULTS = 6
SNIPPET_CHARS = 500


class SearchWebInput(BaseModel):
    """Input schema for web search."""

    query: str = Field(..., description="The search query. Be specific and include relevant context.")


def _truncate(text: str, limit: int = SNIPPET_CHARS) -> str:
    text = text.strip()
    return text if len(text) <= limit else text[:limit].rstrip() + "..."


def format_search_digest(payload: dict[str, Any], max_results: int = MAX_RESULTS) -> str:
    """Combine the optional AI answer and ranked results into one text block."""
    sections: list[str] = []

    answer = payload.get("answer")
    if isinstance(answer, str) and answer.strip():
        sections.append(f"[Summary] {_truncate(answer)}\n")

    results = payload.get("results")
    if isinstance(results, list):
        ranked = [result for result in results if isinstance(result, dict)][:max_results]
        for index, result in enumerate(ranked, start=1):
            title = result.get("title") or "No title"
            url = result.get("url") or "No URL"
            content = result.get("content") or "No content"
            sections.append(f"[{index}] {title}\nURL: {url}\n{_truncate(str(content))}\n")

    return "\n".join(sections) if sections else "No search results found."


def create_search_web_tool(search_client: TavilyClient) -> ToolDefinition:
    async def search_web_handler(tool_input: ToolInput, credentials: Credentials) -> str:
        api_key = credentials.get_key(Backend.TAVILY)
        if not api_key:
            return "Web search is not available: no Tavily API key is configured."

        query = tool_input.get_str("query").strip()
        if not query:
            return "No search query provided."

        logger.info(f"Searching the web for: {query}")
        try:
            payload = await search_client.search(query, api_key)
        except httpx.HTTPStatusError as e:
            return f"Search failed with HTTP {e.response.status_code}"
        except (httpx.HTTPError, ValueError) as e:
            return f"Search error: {type(e).__name__}: {e}"

        return format_search_digest(payload, max_results=search_client.max_results)

    return ToolDefinition(
        name="search_web",
        description=(
            "Search the web for current information on any topic. Use this when you need up-to-date "
            "information about news, sports, current events, or any topic that changes frequently. "
            "Don't deflect with 'I don't have real-time data'; use this tool."
        ),
        input_schema_class=SearchWebInput,
        handler=search_web_handler,
        backend=Backend.TAVILY,
        unavailable_message="Web search is not available: no Tavily API key is configured.",
    )
