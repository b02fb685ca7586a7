"""Typed, non-raising access to a tool call's JSON input."""

from collections.abc import Mapping
from typing import Any

JSONValue = str | int | float | bool | None | list[Any] | dict[str, Any]


class ToolInput(Mapping[str, Any]):
    """Read-only view over the input map the model sent with a tool call.

    Every accessor returns the supplied default when the key is missing or
    holds a value of the wrong JSON type.
    """

    def __init__(self, raw: Mapping[str, Any] | None = None):
        self._raw: dict[str, Any] = dict(raw) if isinstance(raw, Mapping) else {}

    def __getitem__(self, key: str) -> Any:
        return self._raw[key]

    def __iter__(self):
        return iter(self._raw)

    def __len__(self) -> int:
        return len(self._raw)

    def __repr__(self) -> str:
        return f"ToolInput({self._raw!r})"

    def get_str(self, key: str, default: str = "") -> str:
        value = self._raw.get(key)
        return value if isinstance(value, str) else default

    def get_int(self, key: str, default: int = 0) -> int:
        value = self._raw.get(key)
        # bool is an int subclass but never a valid JSON number here
        if isinstance(value, bool):
            return default
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        value = self._raw.get(key)
        if isinstance(value, bool) or not isinstance(value, int | float):
            return default
        return float(value)

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self._raw.get(key)
        return value if isinstance(value, bool) else default

    def get_dict(self, key: str, default: dict[str, Any] | None = None) -> dict[str, Any]:
        value = self._raw.get(key)
        if isinstance(value, dict):
            return value
        return default if default is not None else {}

    def get_list(self, key: str, default: list[Any] | None = None) -> list[Any]:
        value = self._raw.get(key)
        if isinstance(value, list):
            return value
        return default if default is not None else []

    def as_dict(self) -> dict[str, Any]:
        return dict(self._raw)
