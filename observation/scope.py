"""
Scope — makes an observation "current" for a lexical extent.

The current scope lives in a ContextVar, so each thread and each asyncio
Task sees its own value and concurrent operations never see each other's
observation. Opening a scope records the previously current one; closing
restores it, which gives strict LIFO nesting without a caller-managed stack.

Usage:
    with observation.open_scope():
        assert get_current_observation() is observation
        do_work()  # nested code can find the observation here
    # previous observation (or None) is current again
"""

from contextvars import ContextVar
from typing import Optional

from observation.utils.logger import get_logger

logger = get_logger(__name__)

# Context variable: one value per thread / asyncio Task
_current_scope: ContextVar[Optional["Scope"]] = ContextVar("_current_observation_scope", default=None)


class Scope:
    """
    Activation record for one observation.

    The observation is borrowed, not owned. Created already open; use as a
    context manager or call close() on every exit path.
    """

    def __init__(self, observation):
        self.observation = observation
        self.previous: Optional[Scope] = _current_scope.get()
        self._closed = False
        _current_scope.set(self)
        try:
            observation._notify_scope_opened()
        except BaseException:
            # Caller never receives this scope, so it can't close it
            self._closed = True
            _current_scope.set(self.previous)
            raise

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Restore the previously current scope. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        if _current_scope.get() is not self:
            logger.warning(
                f"Closing scope for '{self.observation.name}' out of order; "
                f"restoring its previous scope anyway"
            )
        previous = self.previous
        while previous is not None and previous.closed:
            previous = previous.previous
        _current_scope.set(previous)
        self.observation._notify_scope_closed()

    def __enter__(self) -> "Scope":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Scope({self.observation!r}, {state})"


class _NoOpScope(Scope):
    """Scope of a disabled observation; leaves the current slot untouched."""

    def __init__(self, observation):
        self.observation = observation
        self.previous = None
        self._closed = False

    def close(self) -> None:
        self._closed = True


def get_current_scope() -> Optional[Scope]:
    """The innermost open scope in this execution context, or None."""
    return _current_scope.get()


def get_current_observation():
    """The observation of the innermost open scope, or None. Absence is not an error."""
    scope = _current_scope.get()
    if scope is None:
        return None
    return scope.observation
