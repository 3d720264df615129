"""cellgraph: a reactive-state runtime with plugins, middleware, batching, and history."""

from importlib.metadata import version as _version

__version__ = _version("cellgraph")

from cellgraph.errors import (
    ReactiveError,
    ValidationFailure,
    Unsupported,
    NotFound,
    ReentrantCommit,
    HookFailure,
    PropagationFailure,
)
from cellgraph.ids import sequential_ids, uuid_ids
from cellgraph.options import SystemOptions
from cellgraph.reactive import Reactive, ReactiveConfig, ReactiveMeta, Status
from cellgraph.plugin import Plugin, Hook, HOOKS, ErrorContext
from cellgraph.middleware import Middleware, MiddlewareContext
from cellgraph.stream import EventStream, SystemEvent
from cellgraph.system import ReactiveSystem, SystemContext
# logging_plugin and devtools NOT auto-imported: opt-in only

__all__ = [
    "ReactiveSystem",
    "SystemContext",
    "SystemOptions",
    "Reactive",
    "ReactiveConfig",
    "ReactiveMeta",
    "Status",
    "Plugin",
    "Hook",
    "HOOKS",
    "ErrorContext",
    "Middleware",
    "MiddlewareContext",
    "EventStream",
    "SystemEvent",
    "ReactiveError",
    "ValidationFailure",
    "Unsupported",
    "NotFound",
    "ReentrantCommit",
    "HookFailure",
    "PropagationFailure",
    "sequential_ids",
    "uuid_ids",
]
