"""
Observation core — lifecycle instrumentation with pluggable handlers.

Instrumented code marks the start and stop of an operation once; every
handler registered on the ObservationRegistry reacts to it without the
instrumented code knowing which handlers exist.

Usage:
    from observation import Observation, ObservationRegistry

    # Wire once at startup
    registry = ObservationRegistry.create()
    registry.observation_handler(TimerHandler(meter))
    registry.key_values_provider(EnvironmentProvider("prod"))

    # Instrument an operation
    with Observation.create_not_started("orders.place", registry) as obs:
        obs.low_cardinality_key_value("channel", "web")
        place_order()

    # Anywhere below, without passing it around
    current = Observation.current()
"""

from observation.context import Context
from observation.documentation import (
    DocumentedObservation,
    KeyName,
    ObservationDocumentation,
    get_registered_documentation,
    register_documentation,
    validate_documentation,
)
from observation.errors import (
    IllegalStateTransition,
    InvalidArgument,
    MissingContextValue,
    ObservationError,
)
from observation.handler import (
    AllMatchingCompositeObservationHandler,
    FirstMatchingCompositeObservationHandler,
    ObservationHandler,
)
from observation.keyvalues import KeyValue, KeyValues
from observation.observation import (
    Event,
    NoopObservation,
    Observation,
    ObservationState,
    observed,
)
from observation.providers import KeyValuesProvider, compose_key_values
from observation.registry import NOOP_REGISTRY, ObservationConfig, ObservationRegistry
from observation.scope import Scope, get_current_observation, get_current_scope

__all__ = [
    "Context",
    "KeyValue",
    "KeyValues",
    "KeyValuesProvider",
    "compose_key_values",
    "ObservationHandler",
    "FirstMatchingCompositeObservationHandler",
    "AllMatchingCompositeObservationHandler",
    "ObservationRegistry",
    "ObservationConfig",
    "NOOP_REGISTRY",
    "Observation",
    "NoopObservation",
    "ObservationState",
    "Event",
    "observed",
    "Scope",
    "get_current_observation",
    "get_current_scope",
    "ObservationDocumentation",
    "DocumentedObservation",
    "KeyName",
    "register_documentation",
    "validate_documentation",
    "get_registered_documentation",
    "ObservationError",
    "InvalidArgument",
    "MissingContextValue",
    "IllegalStateTransition",
]
