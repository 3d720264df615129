"""Reactive values — the nodes of the dependency graph.

A Reactive is a thin handle: an id, the current value, metadata, and the
ids of the reactives it reads from (dependencies) and that read from it
(dependents). The handle is never replaced. Commits swap the value and
update metadata in place, so anyone holding a Reactive sees live values
through further value() calls.

Mutation goes through the owning ReactiveSystem, which runs the plugin,
middleware, history, and propagation pipeline around the swap.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Generic, Mapping, Sequence, TypeVar

from cellgraph.errors import NotFound

if TYPE_CHECKING:
    from cellgraph.system import ReactiveSystem

T = TypeVar("T")

READONLY_TYPE = "readonly"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Status(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    ERROR = "error"
    SUCCESS = "success"


@dataclass
class ReactiveMeta:
    """Bookkeeping attached to every reactive.

    ``custom`` belongs to extensions; the engine never reads it.
    """

    type: str
    created: datetime = field(default_factory=_now)
    last_updated: datetime | None = None
    update_count: int = 0
    status: Status = Status.IDLE
    error: BaseException | None = None
    custom: dict[str, Any] = field(default_factory=dict)


@dataclass
class ReactiveConfig(Generic[T]):
    """What to create. Passed through before_create hooks before use.

    derive, when given, computes the value a propagation pass recommits:
    it receives ``{dependency_id: dependency.value()}``.
    """

    type: str
    initial_value: T
    id: str | None = None
    dependencies: Sequence[str] = ()
    readonly: bool = False
    derive: Callable[[Mapping[str, Any]], T] | None = None

    @property
    def is_readonly(self) -> bool:
        return self.readonly or self.type == READONLY_TYPE


class Reactive(Generic[T]):
    """A named, observable, optionally mutable value cell."""

    __slots__ = (
        "id",
        "meta",
        "dependencies",
        "dependents",
        "derive",
        "_value",
        "_readonly",
        "_system",
    )

    def __init__(
        self,
        id: str,
        value: T,
        *,
        type: str = "state",
        dependencies: Sequence[str] = (),
        readonly: bool = False,
        derive: Callable[[Mapping[str, Any]], T] | None = None,
    ) -> None:
        self.id = id
        self.meta = ReactiveMeta(type=type)
        self.dependencies: set[str] = set(dependencies)
        self.dependents: set[str] = set()
        self.derive = derive
        self._value = value
        self._readonly = readonly
        self._system: ReactiveSystem | None = None

    @classmethod
    def from_config(cls, id: str, config: ReactiveConfig[T]) -> Reactive[T]:
        return cls(
            id,
            config.initial_value,
            type=config.type,
            dependencies=config.dependencies,
            readonly=config.is_readonly,
            derive=config.derive,
        )

    @property
    def readonly(self) -> bool:
        return self._readonly

    def value(self) -> T:
        """Read the last committed value. No side effects."""
        return self._value

    async def set(self, value: T) -> None:
        """Commit a new value through the owning system's pipeline.

        Raises Unsupported on read-only reactives and NotFound if the
        reactive is not registered with a system.
        """
        if self._system is None:
            raise NotFound(self.id)
        await self._system._update(self, value)

    def _bind(self, system: ReactiveSystem | None) -> None:
        self._system = system

    def _commit(self, value: T) -> None:
        """Swap the value and stamp metadata. Called by the engine only."""
        self._value = value
        self.meta.last_updated = _now()
        self.meta.update_count += 1

    def __repr__(self) -> str:
        flag = ", readonly" if self._readonly else ""
        return f"Reactive({self.id!r}, {self._value!r}{flag})"
