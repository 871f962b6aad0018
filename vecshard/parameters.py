"""A named parameter store with typed defaults."""

from __future__ import annotations

from typing import Any

_MISSING = object()


class Parameters:
    """Holds named parameters; ``num_threads`` starts at 0."""

    def __init__(self) -> None:
        self._params: dict[str, Any] = {"num_threads": 0}

    def set(self, name: str, value: Any) -> None:
        """Store ``value`` under ``name``, replacing any earlier value."""
        self._params[name] = value

    def get(self, name: str, *args: Any) -> Any:
        """Return the value stored under ``name``.

        With no default, a missing name raises ``KeyError`` and a stored
        ``None`` raises ``ValueError``. With a default, either case returns it.
        """
        if len(args) > 1:
            raise TypeError("get() takes at most one default value")
        default = args[0] if args else _MISSING
        value = self._params.get(name, _MISSING)
        if value is _MISSING:
            if default is not _MISSING:
                return default
            raise KeyError("Invalid parameter name.")
        if value is None:
            if default is not _MISSING:
                return default
            raise ValueError(f"Parameter {name} has value null.")
        return value

    def __contains__(self, name: object) -> bool:
        return name in self._params