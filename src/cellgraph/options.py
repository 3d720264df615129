"""System options with documented defaults."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Mapping


@dataclass(frozen=True)
class SystemOptions:
    """Resolved options for one ReactiveSystem.

    enable_history: record prior values on every commit.
    history_size:   per-reactive bound on the history log (> 0).
    async_timeout:  milliseconds; carried for plugins and callers that wrap
                    calls in asyncio.timeout. The engine never cancels.
    batch_updates:  defer mutations made inside batch() until the flush.
    dev_tools:      emit SystemEvents on ReactiveSystem.events.
    """

    enable_history: bool = False
    history_size: int = 10
    async_timeout: int = 5000
    batch_updates: bool = False
    dev_tools: bool = False

    def __post_init__(self) -> None:
        if self.history_size <= 0:
            raise ValueError(f"history_size must be > 0, got {self.history_size}")
        if self.async_timeout < 0:
            raise ValueError(f"async_timeout must be >= 0, got {self.async_timeout}")

    @classmethod
    def resolve(cls, options: SystemOptions | Mapping[str, Any] | None) -> SystemOptions:
        """Accept an instance, a mapping of field names, or None for defaults."""
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        known = {f.name for f in fields(cls)}
        unknown = set(options) - known
        if unknown:
            raise ValueError(f"Unknown options: {', '.join(sorted(unknown))}")
        return cls(**options)

    @property
    def timeout_seconds(self) -> float:
        return self.async_timeout / 1000
