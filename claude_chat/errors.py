"""Exception types raised by the chat core."""


class ClaudeChatError(Exception):
    """Base class for chat client errors."""


class AnthropicTransportError(ClaudeChatError):
    """Network, timeout or non-2xx failure while talking to the model backend.

    Fatal to the current turn. The message carries the status code and the
    provider's error body, never request headers.
    """

    def __init__(self, detail: str, status_code: int | None = None):
        self.detail = detail
        self.status_code = status_code
        prefix = f"HTTP {status_code}: " if status_code is not None else ""
        super().__init__(f"{prefix}{detail}")


class MissingCredentialError(ClaudeChatError):
    """A required backend credential is not configured."""

    def __init__(self, backend: str):
        self.backend = backend
        super().__init__(f"No API key configured for {backend}. Add one in settings or via the environment.")
