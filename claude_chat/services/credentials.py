"""Backend credential lookup.

Secret storage itself (an OS keychain) lives outside this package; anything
implementing `CredentialStore` can be plugged in. The loop reads a frozen
`Credentials` snapshot once per turn so tool availability cannot change
mid-turn.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol


class Backend(str, Enum):
    """Services that need their own API key."""

    ANTHROPIC = "anthropic"
    TAVILY = "tavily"
    OPENWEATHERMAP = "openweathermap"

    @property
    def env_var(self) -> str:
        return _ENV_VARS[self]


_ENV_VARS = {
    Backend.ANTHROPIC: "ANTHROPIC_API_KEY",
    Backend.TAVILY: "TAVILY_API_KEY",
    Backend.OPENWEATHERMAP: "OWM_API_KEY",
}


class CredentialStore(Protocol):
    """Read access to backend API keys."""

    def has_key(self, backend: Backend) -> bool: ...

    def get_key(self, backend: Backend) -> str | None: ...


class InMemoryCredentialStore:
    """Stored keys with an environment-variable fallback.

    A stored non-empty value wins; otherwise the backend's environment
    variable is consulted. Empty strings count as absent.
    """

    def __init__(self, stored: Mapping[Backend, str] | None = None, environ: Mapping[str, str] | None = None):
        self._stored: dict[Backend, str] = dict(stored or {})
        self._environ = environ if environ is not None else os.environ

    def set_key(self, backend: Backend, key: str) -> None:
        self._stored[backend] = key

    def delete_key(self, backend: Backend) -> bool:
        return self._stored.pop(backend, None) is not None

    def get_key(self, backend: Backend) -> str | None:
        stored = self._stored.get(backend)
        if stored:
            return stored
        return self._environ.get(backend.env_var) or None

    def has_key(self, backend: Backend) -> bool:
        return self.get_key(backend) is not None


@dataclass(frozen=True)
class Credentials:
    """Immutable snapshot of the keys available for one turn."""

    keys: Mapping[Backend, str] = field(default_factory=dict)

    @classmethod
    def from_store(cls, store: CredentialStore) -> "Credentials":
        return cls(keys={backend: key for backend in Backend if (key := store.get_key(backend))})

    def has_key(self, backend: Backend) -> bool:
        return bool(self.keys.get(backend))

    def get_key(self, backend: Backend) -> str | None:
        return self.keys.get(backend) or None
