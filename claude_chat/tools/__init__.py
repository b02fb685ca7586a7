"""Tools for the conversational assistant."""

from claude_chat.tools.registry import ToolsRegistry, get_tools_registry, round_activity_label, tool_activity_label

__all__ = ["ToolsRegistry", "get_tools_registry", "round_activity_label", "tool_activity_label"]
