"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from claude_chat.models.tool_input import ToolInput
from claude_chat.services.credentials import Backend, Credentials

ToolHandler = Callable[[ToolInput, Credentials], Awaitable[str]]


class EmptyInput(BaseModel):
    """Input schema for tools that take no parameters."""


@dataclass
class ToolDefinition:
    """Definition of a tool the model may call."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler
    backend: Backend | None = None
    unavailable_message: str = ""

    def is_available(self, credentials: Credentials) -> bool:
        """A tool is offered only when its backend credential is configured."""
        return self.backend is None or credentials.has_key(self.backend)

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        schema = self.input_schema_class.model_json_schema()
        schema.pop("title", None)
        schema.setdefault("properties", {})
        schema.setdefault("required", [])
        return schema

    def to_api_schema(self) -> dict[str, Any]:
        """Tool entry for the Messages API `tools` array."""
        return {"name": self.name, "description": self.description, "input_schema": self.get_json_schema()}
