"""
Observation — one occurrence of an instrumented operation.

An Observation moves NOT_STARTED → STARTED → STOPPED and, at each
transition, calls every applicable handler in registration order. While
STARTED it may receive any number of events and at most one recorded error.

Usage:
    registry = ObservationRegistry.create()
    registry.observation_handler(TimerHandler(meter))

    # Recommended: scoped use, stop() guaranteed on every exit path
    result = Observation.create_not_started("orders.place", registry).observe(place_order, order)

    with Observation.create_not_started("orders.place", registry) as obs:
        obs.event("payment_authorized")
        place_order(order)

    # Manual use: the caller owns every exit path
    obs = Observation.create_not_started("orders.place", registry).start()
    try:
        place_order(order)
    except Exception as e:
        obs.error(e)
        raise
    finally:
        obs.stop()

Lifecycle policy:
    - start() twice, or error()/event() outside STARTED, raises
      IllegalStateTransition.
    - stop() before start() raises IllegalStateTransition; any stop() after
      the first is a no-op so defensive double-cleanup is safe.
    - error() is first-error-wins: later calls are silently ignored and no
      handler sees them.
"""

import functools
import inspect
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Union

from observation.context import Context
from observation.errors import IllegalStateTransition, InvalidArgument
from observation.handler import ObservationHandler
from observation.keyvalues import KeyValue
from observation.providers import KeyValuesProvider, ProvidedKeys, applicable_providers, apply_providers
from observation.scope import Scope, _NoOpScope, get_current_observation
from observation.utils.logger import get_logger

logger = get_logger(__name__)

ContextArg = Union[Context, Callable[[], Context], None]


class ObservationState(Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Event:
    """A named, informational signal raised during an observation."""

    name: str
    contextual_name: Optional[str] = None

    @classmethod
    def of(cls, name: str, contextual_name: Optional[str] = None) -> "Event":
        if not isinstance(name, str) or not name:
            raise InvalidArgument(f"Event name must be a non-empty string, got {name!r}")
        return cls(name=name, contextual_name=contextual_name or name)


def _build_context(context: ContextArg) -> Context:
    if context is None:
        return Context()
    if isinstance(context, Context):
        return context
    if callable(context):
        built = context()
        if not isinstance(built, Context):
            raise InvalidArgument(f"Context factory returned {type(built).__name__}, not Context")
        return built
    raise InvalidArgument(f"Expected Context or context factory, got {type(context).__name__}")


class Observation:
    """
    State machine for one operation, bound to exactly one Context.

    Create instances through create_not_started() / create_started() so that
    a disabled registry or a rejecting predicate yields a NoopObservation.
    """

    def __init__(
        self,
        name: str,
        registry,
        context: Context,
        provider: Optional[KeyValuesProvider] = None,
    ):
        self._registry = registry
        self._context = context
        self._context.set_name(name)
        self._provider = provider
        self._state = ObservationState.NOT_STARTED
        self._lock = threading.Lock()
        self._handlers: Tuple[ObservationHandler, ...] = ()
        self._global_providers: Tuple[KeyValuesProvider, ...] = ()
        self._provided_keys: Optional[ProvidedKeys] = None
        self._error_recorded = False
        self._scope: Optional[Scope] = None

        if context.parent_observation is None:
            parent = get_current_observation()
            if parent is not None and not parent.is_noop():
                context.parent_observation = parent

    # --- Factories ---

    @classmethod
    def create_not_started(
        cls,
        name: Optional[str],
        registry=None,
        context: ContextArg = None,
        provider: Optional[KeyValuesProvider] = None,
    ) -> "Observation":
        """
        Create an observation without starting it.

        Args:
            name: Low-cardinality operation name; falls back to context.name.
            registry: ObservationRegistry; None or disabled yields a no-op.
            context: A Context, or a zero-argument factory so that no context
                is built when the registry is disabled.
            provider: Call-site KeyValuesProvider, merged after the globals.
        """
        if registry is None or not registry.is_enabled():
            return NoopObservation(name, context if isinstance(context, Context) else None)

        ctx = _build_context(context)
        name = name or ctx.name
        if not name:
            raise InvalidArgument("Observation name must be a non-empty string")
        ctx.set_name(name)

        if not registry.is_observation_enabled(name, ctx):
            return NoopObservation(name, ctx)
        return cls(name, registry, ctx, provider)

    @classmethod
    def create_started(
        cls,
        name: Optional[str],
        registry=None,
        context: ContextArg = None,
        provider: Optional[KeyValuesProvider] = None,
    ) -> "Observation":
        return cls.create_not_started(name, registry, context, provider).start()

    @staticmethod
    def current() -> Optional["Observation"]:
        """The observation scoped in this thread / asyncio Task, or None."""
        return get_current_observation()

    # --- Introspection ---

    @property
    def name(self) -> Optional[str]:
        return self._context.name

    @property
    def context(self) -> Context:
        return self._context

    def get_context(self) -> Context:
        return self._context

    @property
    def state(self) -> ObservationState:
        return self._state

    @property
    def registry(self):
        return self._registry

    @property
    def handlers(self) -> Tuple[ObservationHandler, ...]:
        """Handlers applicable to this observation; empty until start()."""
        return self._handlers

    def is_noop(self) -> bool:
        return False

    # --- Configuration ---

    def contextual_name(self, contextual_name: Optional[str]) -> "Observation":
        self._context.set_contextual_name(contextual_name)
        return self

    def parent_observation(self, parent: Optional["Observation"]) -> "Observation":
        if parent is not None and parent.is_noop():
            parent = None
        self._context.parent_observation = parent
        return self

    def low_cardinality_key_value(self, key: str, value: Any) -> "Observation":
        self._context.add_low_cardinality_key_value(KeyValue.of(key, value))
        return self

    def low_cardinality_key_values(self, key_values: Any) -> "Observation":
        self._context.add_low_cardinality_key_values(key_values)
        return self

    def high_cardinality_key_value(self, key: str, value: Any) -> "Observation":
        self._context.add_high_cardinality_key_value(KeyValue.of(key, value))
        return self

    def high_cardinality_key_values(self, key_values: Any) -> "Observation":
        self._context.add_high_cardinality_key_values(key_values)
        return self

    def key_values_provider(self, provider: KeyValuesProvider) -> "Observation":
        """Set the call-site provider; only allowed before start()."""
        if self._state is not ObservationState.NOT_STARTED:
            raise IllegalStateTransition("key_values_provider", self._state, self.name)
        self._provider = provider
        return self

    # --- Lifecycle ---

    def start(self) -> "Observation":
        with self._lock:
            if self._state is not ObservationState.NOT_STARTED:
                raise IllegalStateTransition("start", self._state, self.name)
            self._state = ObservationState.STARTED

        context = self._context
        config = self._registry.config
        # Fixed for the observation's lifetime; later registrations don't apply
        self._handlers = tuple(h for h in config.observation_handlers if h.supports_context(context))
        self._global_providers = config.key_values_providers
        self._apply_providers()
        context.mark_started()

        for handler in self._handlers:
            handler.on_start(context)
        return self

    def error(self, error: BaseException) -> "Observation":
        with self._lock:
            if self._state is not ObservationState.STARTED:
                raise IllegalStateTransition("error", self._state, self.name)
            if self._error_recorded:
                logger.debug(
                    f"Ignoring error {type(error).__name__} for '{self.name}': "
                    f"{type(self._context.error).__name__} already recorded"
                )
                return self
            self._error_recorded = True
            self._context.set_error(error)

        for handler in self._handlers:
            handler.on_error(self._context)
        return self

    def event(self, event: Union[Event, str]) -> "Observation":
        if not isinstance(event, Event):
            event = Event.of(event)
        if self._state is not ObservationState.STARTED:
            raise IllegalStateTransition("event", self._state, self.name)

        for handler in self._handlers:
            handler.on_event(event, self._context)
        return self

    def stop(self) -> None:
        with self._lock:
            if self._state is ObservationState.NOT_STARTED:
                raise IllegalStateTransition("stop", self._state, self.name)
            if self._state is ObservationState.STOPPED:
                logger.debug(f"Ignoring repeated stop() for '{self.name}'")
                return
            # Marked first so a failing on_stop can't lead to a second round
            self._state = ObservationState.STOPPED

        self._apply_providers()
        context = self._context
        for observation_filter in self._registry.config.observation_filters:
            filtered = observation_filter(context)
            if filtered is not None:
                context = filtered
        self._context = context

        for handler in self._handlers:
            handler.on_stop(context)

    def _apply_providers(self) -> None:
        providers = applicable_providers(self._global_providers, self._provider, self._context)
        if providers or self._provided_keys:
            self._provided_keys = apply_providers(providers, self._context, self._provided_keys)

    # --- Scopes ---

    def open_scope(self) -> Scope:
        """Make this observation current until the returned Scope is closed."""
        return Scope(self)

    def _notify_scope_opened(self) -> None:
        for handler in self._handlers:
            handler.on_scope_opened(self._context)

    def _notify_scope_closed(self) -> None:
        for handler in self._handlers:
            handler.on_scope_closed(self._context)

    # --- Scoped execution ---

    def __enter__(self) -> "Observation":
        fresh = self._state is ObservationState.NOT_STARTED
        try:
            self.start()
            self._scope = self.open_scope()
        except BaseException:
            # A failing on_start or scope handler still ends the observation
            if fresh and self._state is ObservationState.STARTED:
                self.stop()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            # Cancellation and interpreter exits are not operation failures;
            # error() is skipped once the action has stopped the observation itself
            if isinstance(exc, Exception) and self._state is ObservationState.STARTED:
                self.error(exc)
        finally:
            scope, self._scope = self._scope, None
            try:
                if scope is not None:
                    scope.close()
            finally:
                self.stop()
        return False

    async def __aenter__(self) -> "Observation":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return self.__exit__(exc_type, exc, tb)

    def observe(self, action: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """
        Run ``action`` inside this observation.

        Starts, opens a scope, records any Exception via error(), always
        closes the scope and stops, then re-raises the original exception.
        Returns the action's result.
        """
        with self:
            return action(*args, **kwargs)

    async def observe_async(self, action: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """observe() for coroutine functions; the scope is local to the running task."""
        async with self:
            return await action(*args, **kwargs)

    def wrap(self, fn: Callable[..., Any]) -> Callable[..., Any]:
        """
        Return a callable that runs ``fn`` inside this observation.

        The observation is single-use, so the wrapper may be called once.
        Use observed() to get a fresh observation per call.
        """
        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                return await self.observe_async(fn, *args, **kwargs)
            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            return self.observe(fn, *args, **kwargs)
        return wrapper

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, state={self._state.name}, "
            f"handlers={len(self._handlers)})"
        )


class NoopObservation(Observation):
    """Observation returned when observation is disabled; every call is a no-op."""

    def __init__(self, name: Optional[str] = None, context: Optional[Context] = None):
        self._noop_name = name
        self._context = context
        self._registry = None
        self._provider = None
        self._state = ObservationState.NOT_STARTED
        self._handlers = ()
        self._global_providers = ()
        self._provided_keys = None
        self._error_recorded = False
        self._scope = None

    @property
    def name(self) -> Optional[str]:
        return self._noop_name

    @property
    def context(self) -> Context:
        # Built lazily; the disabled path shouldn't pay for it
        if self._context is None:
            self._context = Context(name=self._noop_name)
        return self._context

    def get_context(self) -> Context:
        return self.context

    def is_noop(self) -> bool:
        return True

    def contextual_name(self, contextual_name: Optional[str]) -> "Observation":
        return self

    def parent_observation(self, parent: Optional[Observation]) -> "Observation":
        return self

    def low_cardinality_key_value(self, key: str, value: Any) -> "Observation":
        return self

    def low_cardinality_key_values(self, key_values: Any) -> "Observation":
        return self

    def high_cardinality_key_value(self, key: str, value: Any) -> "Observation":
        return self

    def high_cardinality_key_values(self, key_values: Any) -> "Observation":
        return self

    def key_values_provider(self, provider: KeyValuesProvider) -> "Observation":
        return self

    def start(self) -> "Observation":
        return self

    def error(self, error: BaseException) -> "Observation":
        return self

    def event(self, event: Union[Event, str]) -> "Observation":
        return self

    def stop(self) -> None:
        pass

    def open_scope(self) -> Scope:
        return _NoOpScope(self)

    def __enter__(self) -> "Observation":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        return False


def observed(
    name: str,
    registry,
    context_factory: Optional[Callable[[], Context]] = None,
    provider: Optional[KeyValuesProvider] = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Decorator: run every call of the function in a fresh observation.

    Works for plain and ``async def`` functions.

    Usage:
        @observed("orders.place", registry)
        def place_order(order): ...
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                obs = Observation.create_not_started(name, registry, context_factory, provider)
                return await obs.observe_async(fn, *args, **kwargs)
            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            obs = Observation.create_not_started(name, registry, context_factory, provider)
            return obs.observe(fn, *args, **kwargs)
        return wrapper

    return decorator
