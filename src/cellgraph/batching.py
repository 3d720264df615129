"""Batching — collapse mutations made inside batch() into one commit per id.

While a batch window is open, a deferred set() only records the proposed
value under the reactive's id and returns. Recording the same id again
overwrites the value but keeps the id's original position. When every
operation has finished, the outermost window flushes: one real commit per
pending id, in first-recorded order.

Each window keeps its own pending values. The current window lives in a
contextvar, so operations started by batch() (and the tasks they spawn)
record into the window they run in. A nested window that succeeds hands
its values up to its parent. A window that fails drops only what was
recorded inside it and raises its first failure. Only the outermost window
flushes.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from typing import Any, Awaitable, Callable, Iterable

from cellgraph._async import resolve

logger = logging.getLogger("cellgraph.batching")

Operation = Callable[[], Awaitable[Any]]
Flush = Callable[[str, Any], Awaitable[None]]


async def _call(op: Operation) -> Any:
    return await resolve(op())


class _Window:
    __slots__ = ("parent", "pending")

    def __init__(self, parent: _Window | None) -> None:
        self.parent = parent
        self.pending: dict[str, Any] = {}


class BatchCoordinator:
    """Batch windows and their pending id -> value maps."""

    def __init__(self) -> None:
        self._current: contextvars.ContextVar[_Window | None] = contextvars.ContextVar(
            f"cellgraph_batch_{id(self)}", default=None
        )

    @property
    def is_open(self) -> bool:
        """True when the calling context runs inside a batch window."""
        return self._current.get() is not None

    @property
    def pending_count(self) -> int:
        """Ids waiting in the caller's window. Useful for testing."""
        window = self._current.get()
        return len(window.pending) if window is not None else 0

    def defer(self, reactive_id: str, value: Any) -> None:
        window = self._current.get()
        if window is None:
            raise RuntimeError("defer() called outside a batch window")
        window.pending[reactive_id] = value

    def discard(self, reactive_id: str) -> None:
        """Forget a pending value, e.g. when its reactive is removed mid-batch."""
        window = self._current.get()
        while window is not None:
            window.pending.pop(reactive_id, None)
            window = window.parent

    async def run(self, operations: Iterable[Operation], flush: Flush) -> None:
        """Run operations concurrently inside a window, then flush or abort."""
        parent = self._current.get()
        window = _Window(parent)
        token = self._current.set(window)
        try:
            results = await asyncio.gather(
                *(_call(op) for op in operations), return_exceptions=True
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            if parent is None:
                await self._flush(window, flush)
            else:
                for reactive_id, value in window.pending.items():
                    parent.pending[reactive_id] = value
        except BaseException:
            if window.pending:
                logger.debug("Batch aborted, discarding %d pending values", len(window.pending))
            raise
        finally:
            window.pending.clear()
            self._current.reset(token)

    async def _flush(self, window: _Window, flush: Flush) -> None:
        # Commits may defer new values while the window is still open.
        while window.pending:
            pending = list(window.pending.items())
            window.pending.clear()
            logger.debug("Flushing %d pending values", len(pending))
            for reactive_id, value in pending:
                await flush(reactive_id, value)
