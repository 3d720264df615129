"""DevTools bridge. Opt-in: the core never imports this module.

A ReactiveSystem built with dev_tools=True pushes SystemEvents on its
``events`` stream and can export ``snapshot()`` at any time. The hub is a
process-wide collector that attaches to systems by name and forwards each
event, together with a fresh snapshot, to every registered sink.

    from cellgraph.devtools import hub

    hub.attach(system, "app")
    hub.add_sink(lambda message: inspector.send(message))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable

from cellgraph.stream import Disposer, EventKind, EventStream, SystemEvent

if TYPE_CHECKING:
    from cellgraph.system import ReactiveSystem

logger = logging.getLogger("cellgraph.devtools")


@dataclass(frozen=True)
class DevToolsMessage:
    system: str
    event: SystemEvent
    state: dict[str, Any]


Sink = Callable[[DevToolsMessage], None]


class DevToolsHub:
    """Collects events from attached systems and forwards them to sinks."""

    def __init__(self) -> None:
        self._systems: dict[str, ReactiveSystem] = {}
        self._streams: dict[str, EventStream] = {}
        self._sinks: list[Sink] = []

    @property
    def systems(self) -> list[str]:
        return list(self._systems)

    def attach(
        self,
        system: ReactiveSystem,
        name: str = "default",
        kinds: Iterable[EventKind] | None = None,
    ) -> Disposer:
        """Start forwarding system's events under name. Returns a detach function.

        With kinds, only events of those kinds are forwarded. Snapshots are
        only taken while at least one sink is registered.
        """
        if name in self._systems:
            raise ValueError(f"A system is already attached as {name!r}")
        if not system.options.dev_tools:
            logger.warning("System %r attached without dev_tools; no events will flow", name)

        wanted = frozenset(kinds) if kinds is not None else None
        head = system.events.filter(
            lambda event: bool(self._sinks) and (wanted is None or event.kind in wanted)
        )
        head.map(lambda event: DevToolsMessage(name, event, system.snapshot())).subscribe(
            self._deliver
        )
        self._systems[name] = system
        self._streams[name] = head
        return lambda: self.detach(name)

    def detach(self, name: str) -> None:
        stream = self._streams.pop(name, None)
        if stream is not None:
            stream.dispose()
        self._systems.pop(name, None)

    def add_sink(self, sink: Sink) -> Disposer:
        self._sinks.append(sink)

        def _remove() -> None:
            if sink in self._sinks:
                self._sinks.remove(sink)

        return _remove

    def get_state(self, name: str = "default") -> dict[str, Any]:
        """Current snapshot of an attached system."""
        try:
            system = self._systems[name]
        except KeyError:
            raise KeyError(f"No system attached as {name!r}") from None
        return system.snapshot()

    def _deliver(self, message: DevToolsMessage) -> None:
        for sink in list(self._sinks):
            sink(message)

    def reset(self) -> None:
        """Detach everything and drop all sinks."""
        for name in list(self._systems):
            self.detach(name)
        self._sinks.clear()


hub = DevToolsHub()
