"""
ObservationRegistry — the configuration every Observation is created against.

A registry is created once at startup, configured during application wiring
(handlers, providers, predicates and filters are appended, never removed),
and read concurrently for the rest of the process. Each list is an immutable
tuple replaced under a writer lock, so readers never lock and an observation
that already took a snapshot is unaffected by later registrations.

Usage:
    registry = ObservationRegistry.create()
    registry.config \\
        .observation_handler(TimerHandler(meter)) \\
        .observation_handler(TracingHandler(tracer)) \\
        .key_values_provider(EnvironmentProvider("prod")) \\
        .observation_predicate(lambda name, ctx: not name.startswith("health"))

    with Observation.create_not_started("orders.place", registry):
        place_order()
"""

import threading
from typing import Callable, Optional, Tuple

from observation.config import OBSERVATION_ENABLED
from observation.context import Context
from observation.handler import ObservationHandler
from observation.providers import KeyValuesProvider
from observation.scope import get_current_observation
from observation.utils.logger import get_logger

logger = get_logger(__name__)

# (name, context) -> False to suppress the observation
ObservationPredicate = Callable[[str, Context], bool]
# context -> context, applied at STOP before handlers see it
ObservationFilter = Callable[[Context], Context]


class ObservationConfig:
    """
    Append-only configuration held by an ObservationRegistry.

    Registration methods return the config so wiring code can chain them.
    Registration order is invocation order.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handlers: Tuple[ObservationHandler, ...] = ()
        self._providers: Tuple[KeyValuesProvider, ...] = ()
        self._predicates: Tuple[ObservationPredicate, ...] = ()
        self._filters: Tuple[ObservationFilter, ...] = ()

    def observation_handler(self, handler: ObservationHandler) -> "ObservationConfig":
        if not isinstance(handler, ObservationHandler):
            raise TypeError(f"Expected ObservationHandler, got {type(handler).__name__}")
        with self._lock:
            self._handlers = self._handlers + (handler,)
        logger.info(f"Registered observation handler: {type(handler).__name__}")
        return self

    def key_values_provider(self, provider: KeyValuesProvider) -> "ObservationConfig":
        if not isinstance(provider, KeyValuesProvider):
            raise TypeError(f"Expected KeyValuesProvider, got {type(provider).__name__}")
        with self._lock:
            self._providers = self._providers + (provider,)
        logger.info(f"Registered key values provider: {type(provider).__name__}")
        return self

    def observation_predicate(self, predicate: ObservationPredicate) -> "ObservationConfig":
        with self._lock:
            self._predicates = self._predicates + (predicate,)
        logger.info("Registered observation predicate")
        return self

    def observation_filter(self, observation_filter: ObservationFilter) -> "ObservationConfig":
        with self._lock:
            self._filters = self._filters + (observation_filter,)
        logger.info("Registered observation filter")
        return self

    @property
    def observation_handlers(self) -> Tuple[ObservationHandler, ...]:
        return self._handlers

    @property
    def key_values_providers(self) -> Tuple[KeyValuesProvider, ...]:
        return self._providers

    @property
    def observation_predicates(self) -> Tuple[ObservationPredicate, ...]:
        return self._predicates

    @property
    def observation_filters(self) -> Tuple[ObservationFilter, ...]:
        return self._filters


class ObservationRegistry:
    """
    Holds the handler/provider configuration and the global on/off switch.

    When disabled, Observation creation returns a NoopObservation whose every
    operation is a cheap no-op.
    """

    def __init__(self, enabled: Optional[bool] = None):
        self._config = ObservationConfig()
        self._enabled = OBSERVATION_ENABLED if enabled is None else bool(enabled)

    @classmethod
    def create(cls, enabled: Optional[bool] = None) -> "ObservationRegistry":
        return cls(enabled=enabled)

    @property
    def config(self) -> ObservationConfig:
        return self._config

    def observation_handler(self, handler: ObservationHandler) -> "ObservationRegistry":
        self._config.observation_handler(handler)
        return self

    def key_values_provider(self, provider: KeyValuesProvider) -> "ObservationRegistry":
        self._config.key_values_provider(provider)
        return self

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        logger.info(f"Observation registry {'enabled' if self._enabled else 'disabled'}")

    def is_observation_enabled(self, name: str, context: Optional[Context]) -> bool:
        """False when the registry is off or any predicate rejects (name, context)."""
        if not self._enabled:
            return False
        for predicate in self._config.observation_predicates:
            if not predicate(name, context):
                return False
        return True

    def get_current_observation(self):
        """The observation scoped in the current thread / asyncio task, or None."""
        return get_current_observation()

    def __repr__(self) -> str:
        return (
            f"ObservationRegistry(enabled={self._enabled}, "
            f"handlers={len(self._config.observation_handlers)}, "
            f"providers={len(self._config.key_values_providers)})"
        )


NOOP_REGISTRY = ObservationRegistry(enabled=False)
