"""Plugins — ordered lifecycle hooks around create, update, and destroy.

A plugin is any object with a ``name`` and some subset of the hooks listed
in HOOKS. Missing hooks are skipped. Either subclass Plugin and define the
hooks as methods, or pass them as keyword arguments:

    audit = Plugin("audit", after_update=lambda value, reactive: log.append(value))

Hooks may be plain functions or coroutines. For one hook, plugins run one
at a time in registration order, each awaited before the next starts.

Transform hooks fold: each plugin gets the previous plugin's result.
    before_create(config) -> config
    before_update(value, previous, reactive) -> value

Notification hooks all get the same subject; return values are ignored.
    after_create(reactive)
    after_update(value, reactive)
    before_destroy(reactive)

handle_error(error, context) is side-effect only. Every plugin's handler
runs even when an earlier one raises. Failures are collected, not raised.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator

from cellgraph._async import resolve
from cellgraph.errors import HookFailure, ReactiveError, wrap

if TYPE_CHECKING:
    from cellgraph.system import SystemContext

logger = logging.getLogger("cellgraph.plugin")


class Hook(str, enum.Enum):
    BEFORE_CREATE = "before_create"
    AFTER_CREATE = "after_create"
    BEFORE_UPDATE = "before_update"
    AFTER_UPDATE = "after_update"
    BEFORE_DESTROY = "before_destroy"
    HANDLE_ERROR = "handle_error"


# Fixed dispatch order for introspection and validation.
HOOKS: tuple[Hook, ...] = tuple(Hook)

_FOLDING = frozenset({Hook.BEFORE_CREATE, Hook.BEFORE_UPDATE})


@dataclass(frozen=True)
class ErrorContext:
    """Where a failure happened: phase is create, update, or destroy."""

    phase: str
    reactive_id: str | None
    type: str | None


class Plugin:
    """Named bundle of optional lifecycle hooks."""

    def __init__(
        self,
        name: str,
        *,
        initialize: Callable[[SystemContext], None] | None = None,
        **hooks: Callable[..., Any],
    ) -> None:
        self.name = name
        unknown = set(hooks) - {h.value for h in HOOKS}
        if unknown:
            raise TypeError(f"Unknown plugin hooks: {', '.join(sorted(unknown))}")
        if initialize is not None:
            self.initialize = initialize
        for hook_name, fn in hooks.items():
            if fn is not None:
                setattr(self, hook_name, fn)

    def __repr__(self) -> str:
        return f"Plugin({self.name!r})"


def implemented_hooks(plugin: Any) -> list[Hook]:
    """Hooks this plugin provides, in dispatch order."""
    return [hook for hook in HOOKS if callable(getattr(plugin, hook.value, None))]


class HookPipeline:
    """Registered plugins in order, and the runners for each hook."""

    def __init__(self) -> None:
        self._plugins: dict[str, Any] = {}

    def register(self, plugin: Any) -> None:
        name = getattr(plugin, "name", None)
        if not name:
            raise ValueError(f"Plugin {plugin!r} has no name")
        if name in self._plugins:
            raise ValueError(f"Plugin {name!r} is already registered")
        self._plugins[name] = plugin

    def unregister(self, name: str) -> None:
        self._plugins.pop(name, None)

    @property
    def names(self) -> list[str]:
        return list(self._plugins)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._plugins.values()))

    def __len__(self) -> int:
        return len(self._plugins)

    def _implementations(self, hook: Hook) -> Iterable[tuple[str, Callable[..., Any]]]:
        for plugin in self:
            fn = getattr(plugin, hook.value, None)
            if callable(fn):
                yield plugin.name, fn

    async def run(self, hook: Hook, subject: Any, *args: Any) -> Any:
        """Run one hook across all plugins.

        Returns the folded result for transform hooks and the untouched
        subject for notification hooks. A raising hook aborts the chain;
        non-ReactiveErrors come out as HookFailure.
        """
        if hook is Hook.HANDLE_ERROR:
            raise ValueError("use run_error_handlers for handle_error")
        result = subject
        for name, fn in self._implementations(hook):
            try:
                if hook in _FOLDING:
                    result = await resolve(fn(result, *args))
                else:
                    await resolve(fn(subject, *args))
            except ReactiveError:
                raise
            except Exception as exc:
                raise HookFailure(name, hook.value, exc) from exc
        return result

    async def run_error_handlers(
        self, error: BaseException, context: ErrorContext
    ) -> list[BaseException]:
        """Call every handle_error hook. Returns the failures they raised."""
        failures: list[BaseException] = []
        for name, fn in self._implementations(Hook.HANDLE_ERROR):
            try:
                await resolve(fn(error, context))
            except Exception as exc:
                logger.exception("Plugin %r failed in handle_error", name)
                failures.append(wrap(name, Hook.HANDLE_ERROR.value, exc))
        return failures
