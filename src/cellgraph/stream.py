"""Synchronous event streams for system introspection.

ReactiveSystem.events is an EventStream[SystemEvent]. Subscribers are called
in subscription order on every emit. of_kind, for_reactive, filter, and map
each return a derived stream that is fed by its parent. Disposing a derived
stream unhooks it from its parent. Disposing a root disposes everything
derived from it.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Literal, TypeVar

T = TypeVar("T")
U = TypeVar("U")

Disposer = Callable[[], None]

EventKind = Literal["created", "updated", "removed", "error", "propagation_failed"]


@dataclass(frozen=True)
class SystemEvent:
    """One thing that happened to one reactive."""

    kind: EventKind
    reactive_id: str
    value: Any = None
    error: BaseException | None = None
    timestamp: float = field(default_factory=time.time)


class EventStream(Generic[T]):
    """Push-based event stream with operator chaining."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T], None]] = []
        self._children: list[EventStream] = []
        self._disposed = False
        self._upstream: Disposer | None = None

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def emit(self, value: T) -> None:
        """Push a value to all subscribers."""
        if self._disposed:
            return
        for cb in list(self._subscribers):
            cb(value)

    def subscribe(self, callback: Callable[[T], None]) -> Disposer:
        """Register a callback. Returns a function that removes it."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def map(self, fn: Callable[[T], U]) -> EventStream[U]:
        """Transform events through fn."""
        return self._derive(lambda child, v: child.emit(fn(v)))

    def filter(self, fn: Callable[[T], bool]) -> EventStream[T]:
        """Only pass events where fn returns True."""
        return self._derive(lambda child, v: child.emit(v) if fn(v) else None)

    def of_kind(self, *kinds: EventKind) -> EventStream[T]:
        """Only SystemEvents whose kind is one of kinds."""
        wanted = frozenset(kinds)
        return self.filter(lambda event: getattr(event, "kind", None) in wanted)

    def for_reactive(self, reactive_id: str) -> EventStream[T]:
        """Only SystemEvents about one reactive."""
        return self.filter(lambda event: getattr(event, "reactive_id", None) == reactive_id)

    def dispose(self) -> None:
        """Tear down this stream and all downstream children."""
        self._disposed = True
        self._subscribers.clear()
        for child in list(self._children):
            child.dispose()
        self._children.clear()
        if self._upstream is not None:
            self._upstream()
            self._upstream = None

    def _derive(self, forward: Callable[[EventStream, T], None]) -> EventStream:
        # Disposing the child also drops its subscription on this stream.
        child: EventStream = EventStream()
        self._children.append(child)
        unsubscribe = self.subscribe(lambda v: forward(child, v))

        def _detach() -> None:
            unsubscribe()
            if child in self._children:
                self._children.remove(child)

        child._upstream = _detach
        return child
