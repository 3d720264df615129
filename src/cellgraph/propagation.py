"""Propagation — recommit dependents after an upstream commit.

A pass is a breadth-first walk starting at the committed reactive's
dependents. The visited set is seeded with the source, so a pass never
comes back to it, and every dependent is recommitted at most once no matter
how many paths lead to it. Cycles terminate for the same reason.

Each recommit is awaited before the next starts. Siblings are visited in
id order so a pass is deterministic.

A pass is best-effort fan-out: a dependent whose recommit fails is
recorded as a PropagationFailure and the walk goes on with the rest of the
queue.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Awaitable, Callable

from cellgraph.errors import PropagationFailure
from cellgraph.reactive import Reactive

logger = logging.getLogger("cellgraph.propagation")

Lookup = Callable[[str], "Reactive | None"]
Recommit = Callable[[Reactive], Awaitable[None]]


async def propagate(
    source: Reactive, lookup: Lookup, recommit: Recommit
) -> list[PropagationFailure]:
    """Walk source's dependents breadth-first, recommitting each mutable one.

    ``recommit`` must not start a nested pass; this walk already covers the
    dependents of every node it visits.
    """
    visited: set[str] = {source.id}
    queue: deque[str] = deque(sorted(source.dependents))
    failures: list[PropagationFailure] = []

    while queue:
        dependent_id = queue.popleft()
        if dependent_id in visited:
            continue
        visited.add(dependent_id)

        dependent = lookup(dependent_id)
        if dependent is None:
            logger.debug("Skipping unknown dependent %r of %r", dependent_id, source.id)
            continue

        if not dependent.readonly:
            try:
                await recommit(dependent)
            except Exception as exc:
                failure = PropagationFailure(dependent_id, source.id, exc)
                dependent.meta.error = failure
                failures.append(failure)
                logger.warning(
                    "Propagation from %r: recommit of %r failed: %r",
                    source.id, dependent_id, exc,
                )

        queue.extend(sorted(dependent.dependents - visited))

    return failures
