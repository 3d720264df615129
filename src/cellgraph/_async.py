"""Helpers for extension points that may be plain functions or coroutines."""

from __future__ import annotations

import inspect
from typing import Any


async def resolve(result: Any) -> Any:
    """Await result if it is awaitable, otherwise return it as is."""
    if inspect.isawaitable(result):
        return await result
    return result
