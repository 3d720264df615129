"""Error taxonomy for the reactive runtime.

Every failure that escapes a commit, a creation, or a removal is a
ReactiveError. Anything a plugin, middleware, or subscriber raises that is
not already one gets wrapped in HookFailure, with the original kept as
__cause__.

Error handlers (plugin handle_error, middleware error) never replace the
failure they handle. If they raise, their exceptions are appended to
``handler_errors`` on the failure being handled.
"""

from __future__ import annotations


class ReactiveError(Exception):
    """Base class for all runtime failures."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.handler_errors: list[BaseException] = []


class ValidationFailure(ReactiveError):
    """A value was rejected by middleware or a validator."""


class Unsupported(ReactiveError):
    """Mutation attempted on a read-only reactive."""

    def __init__(self, reactive_id: str) -> None:
        super().__init__(f"Reactive {reactive_id!r} is read-only")
        self.reactive_id = reactive_id


class NotFound(ReactiveError, LookupError):
    """Operation on an id that is not registered."""

    def __init__(self, reactive_id: str) -> None:
        super().__init__(f"No reactive registered with id {reactive_id!r}")
        self.reactive_id = reactive_id


class ReentrantCommit(ReactiveError):
    """set() on a reactive from inside that reactive's own commit."""

    def __init__(self, reactive_id: str) -> None:
        super().__init__(f"Reactive {reactive_id!r} is already committing")
        self.reactive_id = reactive_id


class HookFailure(ReactiveError):
    """A plugin hook, middleware stage, or subscriber raised."""

    def __init__(self, owner: str, hook: str, cause: BaseException) -> None:
        super().__init__(f"{owner}.{hook} failed: {cause!r}")
        self.owner = owner
        self.hook = hook
        self.__cause__ = cause


class PropagationFailure(ReactiveError):
    """A dependent's recommit failed during a propagation pass."""

    def __init__(self, reactive_id: str, source_id: str, cause: BaseException) -> None:
        super().__init__(
            f"Recommit of {reactive_id!r} after change to {source_id!r} failed: {cause!r}"
        )
        self.reactive_id = reactive_id
        self.source_id = source_id
        self.__cause__ = cause


def wrap(owner: str, hook: str, exc: Exception) -> ReactiveError:
    """Return exc unchanged if it is a ReactiveError, else a HookFailure around it."""
    if isinstance(exc, ReactiveError):
        return exc
    return HookFailure(owner, hook, exc)
