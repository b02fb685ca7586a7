"""Tool-augmented streaming chat client for the Anthropic Messages API."""

__version__ = "0.1.0"
