"""Id generators — the identity capability injected into a ReactiveSystem.

An id factory is any zero-argument callable returning a fresh string.
The default draws random uuid4 hex strings. Tests and replay tooling can
pass sequential_ids() to get a deterministic sequence.
"""

from __future__ import annotations

import itertools
import uuid
from typing import Callable

IdFactory = Callable[[], str]


def uuid_ids() -> IdFactory:
    """Random ids: 32 hex chars per call."""
    return lambda: uuid.uuid4().hex


def sequential_ids(prefix: str = "reactive") -> IdFactory:
    """Deterministic ids: ``prefix-1``, ``prefix-2``, ...

    itertools.count is thread-safe (C-level GIL atomic).
    """
    counter = itertools.count(1)
    return lambda: f"{prefix}-{next(counter)}"
