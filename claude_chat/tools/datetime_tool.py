"""Current date/time tool."""

from collections.abc import Callable
from datetime import datetime
from zoneinfo import ZoneInfo

from claude_chat.models.tool_input import ToolInput
from claude_chat.services.credentials import Credentials
from claude_chat.tools.base import EmptyInput, ToolDefinition

REFERENCE_TIMEZONE = ZoneInfo("America/New_York")

Clock = Callable[[], datetime]


def system_clock() -> datetime:
    return datetime.now(REFERENCE_TIMEZONE)


def format_datetime(now: datetime) -> str:
    """Render e.g. 'Sunday, October 18, 2026 2:05 PM (EDT)' in Eastern time."""
    local = now.astimezone(REFERENCE_TIMEZONE)
    hour = local.hour % 12 or 12
    return f"Current date and time: {local:%A, %B} {local.day}, {local:%Y} {hour}:{local:%M %p} ({local.tzname()})"


def create_datetime_tool(clock: Clock = system_clock) -> ToolDefinition:
    async def get_datetime_handler(tool_input: ToolInput, credentials: Credentials) -> str:  # noqa: RUF029
        return format_datetime(clock())

    return ToolDefinition(
        name="get_datetime",
        description=(
            "Get the current date and time in the user's timezone (Eastern). "
            "Use this when you need to know what day or time it is, or to anchor relative dates "
            "like 'yesterday' or 'last Sunday'."
        ),
        input_schema_class=EmptyInput,
        handler=get_datetime_handler,
    )
