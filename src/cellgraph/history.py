"""History ledger — bounded per-reactive log of prior values."""

from __future__ import annotations

from collections import deque
from typing import Any, Iterator


class HistoryLedger:
    """Maps reactive id to a FIFO of prior values, at most ``size`` long."""

    def __init__(self, size: int) -> None:
        if size <= 0:
            raise ValueError(f"history size must be > 0, got {size}")
        self._size = size
        self._logs: dict[str, deque] = {}

    @property
    def size(self) -> int:
        return self._size

    def record(self, reactive_id: str, previous: Any) -> None:
        """Append the value a commit replaced. Evicts the oldest past the bound."""
        log = self._logs.get(reactive_id)
        if log is None:
            log = self._logs[reactive_id] = deque(maxlen=self._size)
        log.append(previous)

    def get(self, reactive_id: str) -> list[Any]:
        """Oldest first. Empty for ids with no recorded commits."""
        return list(self._logs.get(reactive_id, ()))

    def clear(self, reactive_id: str) -> None:
        self._logs.pop(reactive_id, None)

    def __contains__(self, reactive_id: str) -> bool:
        return reactive_id in self._logs

    def __iter__(self) -> Iterator[str]:
        return iter(self._logs)

    def as_dict(self) -> dict[str, list[Any]]:
        return {rid: list(log) for rid, log in self._logs.items()}
