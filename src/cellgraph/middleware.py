"""Middleware — per-mutation value transforms around every set().

Middleware only wraps mutation, never creation or removal.

    before(value, ctx) -> value   runs in order before the commit
    after(value, ctx) -> value    runs in order after the commit
    error(error, ctx)             runs on failure, side-effect only

Raising from before or after aborts the mutation. Raise ValidationFailure
to reject a value. Anything else comes out as HookFailure.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterator, Literal, TypeVar

from cellgraph._async import resolve
from cellgraph.errors import HookFailure, ReactiveError, wrap

if TYPE_CHECKING:
    from cellgraph.reactive import Reactive

T = TypeVar("T")

Phase = Literal["before", "after", "error"]

logger = logging.getLogger("cellgraph.middleware")


@dataclass
class MiddlewareContext(Generic[T]):
    reactive: Reactive[T]
    phase: Phase
    timestamp: float = field(default_factory=time.time)
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class Middleware:
    """A named set of optional before/after/error stages."""

    name: str
    before: Callable[[Any, MiddlewareContext], Any] | None = None
    after: Callable[[Any, MiddlewareContext], Any] | None = None
    error: Callable[[BaseException, MiddlewareContext], Any] | None = None


class MiddlewareChain:
    """Registered middleware in order."""

    def __init__(self, middleware=()) -> None:
        self._middleware: list[Middleware] = []
        for m in middleware:
            self.add(m)

    def add(self, middleware: Middleware) -> None:
        if not getattr(middleware, "name", None):
            raise ValueError(f"Middleware {middleware!r} has no name")
        self._middleware.append(middleware)

    @property
    def names(self) -> list[str]:
        return [m.name for m in self._middleware]

    def __iter__(self) -> Iterator[Middleware]:
        return iter(list(self._middleware))

    def __len__(self) -> int:
        return len(self._middleware)

    async def run(self, phase: Phase, value: T, reactive: Reactive[T]) -> T:
        """Thread value through every ``phase`` stage in registration order."""
        ctx = MiddlewareContext(reactive=reactive, phase=phase)
        result = value
        for m in self:
            stage = m.before if phase == "before" else m.after
            if stage is None:
                continue
            try:
                result = await resolve(stage(result, ctx))
            except ReactiveError:
                raise
            except Exception as exc:
                raise HookFailure(m.name, phase, exc) from exc
        return result

    async def run_error_handlers(
        self, error: BaseException, reactive: Reactive
    ) -> list[BaseException]:
        """Call every error stage. Returns the failures they raised."""
        ctx = MiddlewareContext(reactive=reactive, phase="error")
        failures: list[BaseException] = []
        for m in self:
            if m.error is None:
                continue
            try:
                await resolve(m.error(error, ctx))
            except Exception as exc:
                logger.exception("Middleware %r failed in error handler", m.name)
                failures.append(wrap(m.name, "error", exc))
        return failures
