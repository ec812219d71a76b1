"""
ObservationHandler — the contract every lifecycle observer implements.

Handlers are registered on an ObservationRegistry. When an observation
starts, each registered handler is asked supports_context(); the ones that
answer True become that observation's applicable set, fixed for its whole
lifetime, and are called synchronously in registration order on every
transition.

Handlers are not isolated: an exception raised from a callback reaches
whoever called the observation method that triggered it.

Usage:
    class LatencyHandler(ObservationHandler):
        def supports_context(self, context: Context) -> bool:
            return context.name is not None

        def on_stop(self, context: Context) -> None:
            histogram.observe(context.elapsed_seconds())

    registry.observation_handler(LatencyHandler())
"""

from abc import ABC, abstractmethod
from typing import Iterator, List, Optional, Tuple

from observation.context import Context


class ObservationHandler(ABC):
    """Lifecycle listener with an applicability predicate over Context."""

    @abstractmethod
    def supports_context(self, context: Context) -> bool:
        """Must be pure; evaluated once per observation at START."""
        ...

    def on_start(self, context: Context) -> None:
        pass

    def on_error(self, context: Context) -> None:
        pass

    def on_event(self, event, context: Context) -> None:
        pass

    def on_scope_opened(self, context: Context) -> None:
        pass

    def on_scope_closed(self, context: Context) -> None:
        pass

    def on_stop(self, context: Context) -> None:
        pass


class _CompositeObservationHandler(ObservationHandler):
    def __init__(self, *handlers: ObservationHandler):
        if len(handlers) == 1 and isinstance(handlers[0], (list, tuple)):
            handlers = tuple(handlers[0])
        self._handlers: Tuple[ObservationHandler, ...] = tuple(handlers)

    @property
    def handlers(self) -> Tuple[ObservationHandler, ...]:
        return self._handlers

    @abstractmethod
    def _delegates(self, context: Context) -> Iterator[ObservationHandler]:
        """Handlers that receive a callback for ``context``."""

    def supports_context(self, context: Context) -> bool:
        return any(h.supports_context(context) for h in self._handlers)

    def on_start(self, context: Context) -> None:
        for handler in self._delegates(context):
            handler.on_start(context)

    def on_error(self, context: Context) -> None:
        for handler in self._delegates(context):
            handler.on_error(context)

    def on_event(self, event, context: Context) -> None:
        for handler in self._delegates(context):
            handler.on_event(event, context)

    def on_scope_opened(self, context: Context) -> None:
        for handler in self._delegates(context):
            handler.on_scope_opened(context)

    def on_scope_closed(self, context: Context) -> None:
        for handler in self._delegates(context):
            handler.on_scope_closed(context)

    def on_stop(self, context: Context) -> None:
        for handler in self._delegates(context):
            handler.on_stop(context)

    def __repr__(self) -> str:
        names = ", ".join(type(h).__name__ for h in self._handlers)
        return f"{type(self).__name__}({names})"


class FirstMatchingCompositeObservationHandler(_CompositeObservationHandler):
    """
    Delegates to the first handler that supports the context.

    Useful when several handlers cover overlapping context types and only the
    most specific one should react, e.g. an HTTP-specific tracing handler
    listed before a generic one.
    """

    def first_matching(self, context: Context) -> Optional[ObservationHandler]:
        for handler in self._handlers:
            if handler.supports_context(context):
                return handler
        return None

    def _delegates(self, context: Context) -> Iterator[ObservationHandler]:
        handler = self.first_matching(context)
        if handler is not None:
            yield handler


class AllMatchingCompositeObservationHandler(_CompositeObservationHandler):
    """Delegates to every handler that supports the context, in order."""

    def matching(self, context: Context) -> List[ObservationHandler]:
        return [h for h in self._handlers if h.supports_context(context)]

    def _delegates(self, context: Context) -> Iterator[ObservationHandler]:
        return iter(self.matching(context))
