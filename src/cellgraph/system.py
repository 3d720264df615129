"""ReactiveSystem — the registry and the update pipeline.

The system owns every piece of shared mutable state: the id -> Reactive
registry, the subscriber table, the history ledger, and the batch window.
Plugins get a SystemContext and go through its operations. They never
touch the maps directly.

A commit of reactive R runs, in order:

    batch deferral?  -> record and return
    middleware before         (value transforms, may reject)
    plugin before_update      (value transforms, may reject)
    -- commit point: value swapped, metadata stamped --
    history                   (prior value)
    subscribers
    propagation               (breadth-first over R's dependents)
    plugin after_update
    middleware after

Any failure sets R.meta.status to ERROR, runs every plugin handle_error and
every middleware error handler, and is re-raised to the caller. Failures
before the commit point leave the value untouched.
"""

from __future__ import annotations

import asyncio
import contextvars
import logging
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping, TypeVar

from cellgraph._async import resolve
from cellgraph.batching import BatchCoordinator, Operation
from cellgraph.errors import (
    HookFailure,
    NotFound,
    ReactiveError,
    ReentrantCommit,
    Unsupported,
    ValidationFailure,
)
from cellgraph.history import HistoryLedger
from cellgraph.ids import IdFactory, uuid_ids
from cellgraph.middleware import Middleware, MiddlewareChain
from cellgraph.options import SystemOptions
from cellgraph.plugin import ErrorContext, Hook, HookPipeline
from cellgraph.propagation import propagate
from cellgraph.reactive import Reactive, ReactiveConfig, Status
from cellgraph.stream import EventKind, EventStream, SystemEvent

T = TypeVar("T")

Subscriber = Callable[[Any], "Awaitable[None] | None"]
Unsubscribe = Callable[[], None]

logger = logging.getLogger("cellgraph.system")


class SystemContext:
    """The view of a ReactiveSystem handed to plugins.

    Mappings are read-only. Mutation goes through the operations, which
    delegate to the owning system.
    """

    __slots__ = ("_system",)

    def __init__(self, system: ReactiveSystem) -> None:
        self._system = system

    @property
    def reactives(self) -> Mapping[str, Reactive]:
        return self._system.reactives

    @property
    def history(self) -> Mapping[str, list]:
        return MappingProxyType(self._system._history.as_dict())

    @property
    def options(self) -> SystemOptions:
        return self._system.options

    @property
    def events(self) -> EventStream[SystemEvent]:
        return self._system.events

    def register_reactive(self, reactive: Reactive) -> None:
        self._system.register_reactive(reactive)

    async def remove_reactive(self, reactive_id: str) -> None:
        await self._system.remove_reactive(reactive_id)

    def get_reactive(self, reactive_id: str) -> Reactive | None:
        return self._system.get_reactive(reactive_id)

    async def batch(self, operations: Iterable[Operation]) -> None:
        await self._system.batch(operations)

    def subscribe(self, reactive_id: str, callback: Subscriber) -> Unsubscribe:
        return self._system.subscribe(reactive_id, callback)

    def unsubscribe(self, reactive_id: str) -> None:
        self._system.unsubscribe(reactive_id)

    def snapshot(self) -> dict[str, Any]:
        return self._system.snapshot()


class ReactiveSystem:
    """A dependency graph of reactives with plugins, middleware, batching, and history."""

    def __init__(
        self,
        plugins: Iterable[Any] = (),
        middleware: Iterable[Middleware] = (),
        options: SystemOptions | Mapping[str, Any] | None = None,
        *,
        id_factory: IdFactory | None = None,
    ) -> None:
        self.options = SystemOptions.resolve(options)
        self._new_id = id_factory or uuid_ids()
        self._reactives: dict[str, Reactive] = {}
        self._subscriptions: dict[str, list[Subscriber]] = {}
        self._history = HistoryLedger(self.options.history_size)
        self._batch = BatchCoordinator()
        self._commit_gate = asyncio.Lock()
        # Ids whose commit the current task chain is inside of.
        self._committing: contextvars.ContextVar[frozenset[str]] = contextvars.ContextVar(
            f"cellgraph_commits_{id(self)}", default=frozenset()
        )
        self._retired: set[str] = set()
        self._plugins = HookPipeline()
        self._middleware = MiddlewareChain(middleware)
        self.events: EventStream[SystemEvent] = EventStream()
        self.context = SystemContext(self)
        for plugin in plugins:
            self.add_plugin(plugin)

    # --- Extensions ---

    def add_plugin(self, plugin: Any) -> None:
        """Register a plugin and run its initialize(context), if it has one."""
        self._plugins.register(plugin)
        initialize = getattr(plugin, "initialize", None)
        if initialize is None:
            return
        try:
            initialize(self.context)
        except Exception as exc:
            self._plugins.unregister(plugin.name)
            raise HookFailure(plugin.name, "initialize", exc) from exc

    def add_middleware(self, middleware: Middleware) -> None:
        self._middleware.add(middleware)

    # --- Registry ---

    @property
    def reactives(self) -> Mapping[str, Reactive]:
        return MappingProxyType(self._reactives)

    def get_reactive(self, reactive_id: str) -> Reactive | None:
        return self._reactives.get(reactive_id)

    def _require(self, reactive_id: str) -> Reactive:
        reactive = self._reactives.get(reactive_id)
        if reactive is None:
            raise NotFound(reactive_id)
        return reactive

    def __contains__(self, reactive_id: str) -> bool:
        return reactive_id in self._reactives

    def __len__(self) -> int:
        return len(self._reactives)

    def register_reactive(self, reactive: Reactive) -> None:
        """Add a built Reactive to the registry and wire its dependents.

        Every dependency must already be registered. Used by create() and by
        plugins that rehydrate state.
        """
        if reactive.id in self._reactives:
            raise ValidationFailure(f"Reactive id {reactive.id!r} is already registered")
        if reactive.id in self._retired:
            raise ValidationFailure(f"Reactive id {reactive.id!r} was removed and cannot be reused")
        if reactive.id in reactive.dependencies:
            raise ValidationFailure(f"Reactive {reactive.id!r} cannot depend on itself")
        for dep_id in sorted(reactive.dependencies):
            if dep_id not in self._reactives:
                raise NotFound(dep_id)

        self._reactives[reactive.id] = reactive
        for dep_id in reactive.dependencies:
            self._reactives[dep_id].dependents.add(reactive.id)
        reactive._bind(self)

    def _unregister(self, reactive_id: str, *, retire: bool = True) -> Reactive | None:
        reactive = self._reactives.pop(reactive_id, None)
        if reactive is None:
            return None
        if retire:
            self._retired.add(reactive_id)
        for dep_id in reactive.dependencies:
            dep = self._reactives.get(dep_id)
            if dep is not None:
                dep.dependents.discard(reactive_id)
        for dependent_id in reactive.dependents:
            dependent = self._reactives.get(dependent_id)
            if dependent is not None:
                dependent.dependencies.discard(reactive_id)
        reactive.dependents.clear()
        self._history.clear(reactive_id)
        self._subscriptions.pop(reactive_id, None)
        self._batch.discard(reactive_id)
        reactive._bind(None)
        return reactive

    # --- Lifecycle ---

    async def create(self, config: ReactiveConfig[T]) -> Reactive[T]:
        """Create a reactive through the before_create / after_create hooks."""
        original = config
        reactive: Reactive[T] | None = None
        try:
            config = await self._plugins.run(Hook.BEFORE_CREATE, config)
            if not isinstance(config, ReactiveConfig):
                raise ValidationFailure(
                    f"before_create must return a ReactiveConfig, got {type(config).__name__}"
                )
            reactive = Reactive.from_config(config.id or self._new_id(), config)
            self.register_reactive(reactive)
            await self._plugins.run(Hook.AFTER_CREATE, reactive)
        except ReactiveError as exc:
            if reactive is not None and self._reactives.get(reactive.id) is reactive:
                self._unregister(reactive.id, retire=False)
            source = config if isinstance(config, ReactiveConfig) else original
            context = ErrorContext("create", source.id, source.type)
            exc.handler_errors.extend(await self._plugins.run_error_handlers(exc, context))
            raise

        logger.debug("Created %r (%s)", reactive.id, reactive.meta.type)
        self._emit("created", reactive.id, reactive.value())
        return reactive

    async def remove_reactive(self, reactive_id: str) -> None:
        """Run before_destroy hooks, then drop the reactive, its history and subscribers.

        A failing before_destroy does not block removal. It is reported
        through handle_error and raised once the reactive is gone.
        """
        reactive = self._require(reactive_id)
        failure: ReactiveError | None = None
        try:
            await self._plugins.run(Hook.BEFORE_DESTROY, reactive)
        except ReactiveError as exc:
            failure = exc
            await self._fail(exc, reactive, "destroy")

        self._unregister(reactive_id)
        logger.debug("Removed %r", reactive_id)
        self._emit("removed", reactive_id)
        if failure is not None:
            raise failure

    # --- Mutation ---

    async def _update(
        self,
        reactive: Reactive[T],
        value: T,
        *,
        deferrable: bool = True,
        propagating: bool = True,
    ) -> None:
        """Commit value to reactive, or defer it into the open batch window.

        Commits are serialized per system: a commit and everything it
        triggers (propagation, hooks, subscribers, and tasks they spawn) run
        inside the commit gate, so two commits never interleave their
        effects. Setting a reactive from inside its own commit raises
        ReentrantCommit.

        Unlike a transaction, a commit is not rolled back. If a subscriber,
        after_update, or after middleware raises, status becomes ERROR and
        the failure is raised, but the new value stays committed, because
        dependents have already been recommitted with it.
        """
        if (
            deferrable
            and self.options.batch_updates
            and self._batch.is_open
            and not reactive.readonly
        ):
            self._batch.defer(reactive.id, value)
            return

        active = self._committing.get()
        if reactive.id in active:
            raise ReentrantCommit(reactive.id)
        if active:
            await self._run_update(reactive, value, propagating, active)
            return
        async with self._commit_gate:
            await self._run_update(reactive, value, propagating, active)

    async def _run_update(
        self, reactive: Reactive[T], value: T, propagating: bool, active: frozenset[str]
    ) -> None:
        token = self._committing.set(active | {reactive.id})
        try:
            await self._checked_update(reactive, value, propagating)
        finally:
            self._committing.reset(token)

    async def _checked_update(self, reactive: Reactive[T], value: T, propagating: bool) -> None:
        try:
            if reactive.readonly:
                raise Unsupported(reactive.id)
            if self._reactives.get(reactive.id) is not reactive:
                raise NotFound(reactive.id)
            reactive.meta.status = Status.LOADING
            value = await self._middleware.run("before", value, reactive)
            await self._commit(reactive, value, propagating)
            await self._middleware.run("after", reactive.value(), reactive)
        except ReactiveError as exc:
            await self._fail(exc, reactive, "update")
            raise
        reactive.meta.status = Status.SUCCESS

    async def _commit(self, reactive: Reactive[T], value: T, propagating: bool) -> None:
        previous = reactive.value()
        value = await self._plugins.run(Hook.BEFORE_UPDATE, value, previous, reactive)

        reactive._commit(value)
        if self.options.enable_history:
            self._history.record(reactive.id, previous)
        logger.debug("Committed %r (update %d)", reactive.id, reactive.meta.update_count)
        self._emit("updated", reactive.id, value)

        await self._notify_subscribers(reactive)
        if propagating and reactive.dependents:
            for failure in await propagate(reactive, self.get_reactive, self._recommit):
                self._emit("propagation_failed", failure.reactive_id, error=failure)

        await self._plugins.run(Hook.AFTER_UPDATE, value, reactive)

    async def _recommit(self, dependent: Reactive) -> None:
        """Recommit a dependent during a propagation pass. Never starts a nested pass."""
        value = dependent.value()
        if dependent.derive is not None:
            inputs = {
                dep_id: self._reactives[dep_id].value()
                for dep_id in sorted(dependent.dependencies)
                if dep_id in self._reactives
            }
            try:
                value = dependent.derive(inputs)
            except Exception as exc:
                failure = HookFailure(dependent.id, "derive", exc)
                await self._fail(failure, dependent, "update")
                raise failure from exc
        await self._update(dependent, value, deferrable=False, propagating=False)

    async def _fail(self, exc: ReactiveError, reactive: Reactive, phase: str) -> None:
        reactive.meta.status = Status.ERROR
        reactive.meta.error = exc
        context = ErrorContext(phase, reactive.id, reactive.meta.type)
        failures = await self._plugins.run_error_handlers(exc, context)
        if phase == "update":
            failures += await self._middleware.run_error_handlers(exc, reactive)
        exc.handler_errors.extend(failures)
        logger.debug("%s of %r failed: %r", phase.capitalize(), reactive.id, exc)
        self._emit("error", reactive.id, error=exc)

    async def batch(self, operations: Iterable[Operation]) -> None:
        """Run operations concurrently, then commit each deferred id once.

        Deferral only happens with the batch_updates option. If any
        operation fails, nothing is flushed and the first failure is raised.
        """
        await self._batch.run(operations, self._flush_one)

    async def _flush_one(self, reactive_id: str, value: Any) -> None:
        reactive = self._reactives.get(reactive_id)
        if reactive is not None:
            await self._update(reactive, value, deferrable=False)

    # --- Subscriptions ---

    def subscribe(self, reactive_id: str, callback: Subscriber) -> Unsubscribe:
        """Call callback(value) after every commit of reactive_id.

        Returns a function that removes this callback. Calling it twice is harmless.
        """
        self._require(reactive_id)
        callbacks = self._subscriptions.setdefault(reactive_id, [])
        if callback not in callbacks:
            callbacks.append(callback)

        def _unsubscribe() -> None:
            current = self._subscriptions.get(reactive_id)
            if current is not None and callback in current:
                current.remove(callback)

        return _unsubscribe

    def unsubscribe(self, reactive_id: str) -> None:
        """Drop every subscriber of reactive_id."""
        self._subscriptions.pop(reactive_id, None)

    def subscriber_count(self, reactive_id: str) -> int:
        return len(self._subscriptions.get(reactive_id, ()))

    async def _notify_subscribers(self, reactive: Reactive) -> None:
        # Every subscriber is called. The first failure is raised afterwards.
        failures: list[Exception] = []
        value = reactive.value()
        for callback in list(self._subscriptions.get(reactive.id, ())):
            try:
                await resolve(callback(value))
            except Exception as exc:
                failures.append(exc)
        if failures:
            raise HookFailure(f"subscriber of {reactive.id!r}", "callback", failures[0])

    # --- Introspection ---

    def history(self, reactive_id: str) -> list[Any]:
        """Prior values of reactive_id, oldest first."""
        self._require(reactive_id)
        return self._history.get(reactive_id)

    def snapshot(self) -> dict[str, Any]:
        """Plain-data export of the whole system."""
        return {
            "reactives": {
                rid: {
                    "value": r.value(),
                    "type": r.meta.type,
                    "status": r.meta.status.value,
                    "update_count": r.meta.update_count,
                    "readonly": r.readonly,
                    "dependencies": sorted(r.dependencies),
                    "dependents": sorted(r.dependents),
                }
                for rid, r in self._reactives.items()
            },
            "history": self._history.as_dict(),
            "plugins": self._plugins.names,
            "middleware": self._middleware.names,
        }

    def _emit(
        self,
        kind: EventKind,
        reactive_id: str,
        value: Any = None,
        *,
        error: BaseException | None = None,
    ) -> None:
        if not self.options.dev_tools:
            return
        try:
            self.events.emit(SystemEvent(kind, reactive_id, value, error))
        except Exception:
            logger.exception("Event subscriber failed on %r for %r", kind, reactive_id)

    def __repr__(self) -> str:
        return (
            f"ReactiveSystem({len(self._reactives)} reactives, "
            f"plugins={self._plugins.names}, middleware={self._middleware.names})"
        )
