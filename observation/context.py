"""
Context — the per-operation data bag every handler reads.

A Context belongs to exactly one Observation. It carries a few first-class
slots (name, contextual name, error, weak parent link, start timestamps),
the low/high cardinality KeyValues derived for the operation, and a generic
store keyed by type tag for everything else.

Usage:
    class HttpRequest:
        ...

    ctx = Context(name="http.server.requests")
    ctx.put(HttpRequest, request)

    # inside a handler
    request = ctx.get_required(HttpRequest)

Threading: a Context is single-writer (the thread driving its Observation)
until STOP and safe for concurrent reads after STOP. Nothing here locks.
"""

import time
import weakref
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Hashable, Optional

from observation.errors import MissingContextValue
from observation.keyvalues import KeyValue, KeyValues

_MISSING = object()


class Context:
    """
    Typed, extensible state for one observation.

    Subclasses add strongly-typed attributes for a specific kind of
    operation; the generic put()/get() store is the fallback for
    extension data.
    """

    def __init__(self, name: Optional[str] = None, contextual_name: Optional[str] = None):
        self.name: Optional[str] = name
        self.contextual_name: Optional[str] = contextual_name
        self.error: Optional[BaseException] = None
        self.start_time: Optional[float] = None   # time.monotonic() at START
        self.started_at: Optional[str] = None     # ISO-8601 UTC at START
        self._parent_ref: Optional[weakref.ReferenceType] = None
        self._store: Dict[Hashable, Any] = {}
        self._low_cardinality = KeyValues.empty()
        self._high_cardinality = KeyValues.empty()

    # --- Naming ---

    def get_name(self) -> Optional[str]:
        return self.name

    def set_name(self, name: str) -> "Context":
        self.name = name
        return self

    def get_contextual_name(self) -> Optional[str]:
        return self.contextual_name

    def set_contextual_name(self, contextual_name: Optional[str]) -> "Context":
        self.contextual_name = contextual_name
        return self

    # --- Error ---

    def get_error(self) -> Optional[BaseException]:
        return self.error

    def set_error(self, error: BaseException) -> "Context":
        """Store the failure. First-error-wins is enforced by Observation.error()."""
        self.error = error
        return self

    # --- Parent ---

    @property
    def parent_observation(self):
        """The enclosing observation, or None if unset or already collected."""
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @parent_observation.setter
    def parent_observation(self, observation) -> None:
        self._parent_ref = weakref.ref(observation) if observation is not None else None

    def get_parent_observation(self):
        return self.parent_observation

    def set_parent_observation(self, observation) -> "Context":
        self.parent_observation = observation
        return self

    # --- Timing ---

    def mark_started(self) -> None:
        self.start_time = time.monotonic()
        self.started_at = datetime.now(timezone.utc).isoformat()

    def elapsed_seconds(self) -> Optional[float]:
        """Seconds since START on the monotonic clock, or None if not started."""
        if self.start_time is None:
            return None
        return time.monotonic() - self.start_time

    # --- Generic store ---

    def put(self, key: Hashable, value: Any) -> "Context":
        self._store[key] = value
        return self

    def get(self, key: Hashable, default: Any = None) -> Any:
        return self._store.get(key, default)

    def get_or_default(self, key: Hashable, default: Any) -> Any:
        return self._store.get(key, default)

    def get_required(self, key: Hashable) -> Any:
        value = self._store.get(key, _MISSING)
        if value is _MISSING:
            raise MissingContextValue(key)
        return value

    def contains(self, key: Hashable) -> bool:
        return key in self._store

    def remove(self, key: Hashable) -> Any:
        return self._store.pop(key, None)

    def compute_if_absent(self, key: Hashable, factory: Callable[[Hashable], Any]) -> Any:
        if key not in self._store:
            self._store[key] = factory(key)
        return self._store[key]

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: Hashable) -> bool:
        return key in self._store

    # --- Key values ---

    @property
    def low_cardinality_key_values(self) -> KeyValues:
        return self._low_cardinality

    @property
    def high_cardinality_key_values(self) -> KeyValues:
        return self._high_cardinality

    def add_low_cardinality_key_value(self, key_value: KeyValue) -> "Context":
        self._low_cardinality = self._low_cardinality.and_(key_value)
        return self

    def add_low_cardinality_key_values(self, key_values: Any) -> "Context":
        self._low_cardinality = self._low_cardinality.and_(key_values)
        return self

    def add_high_cardinality_key_value(self, key_value: KeyValue) -> "Context":
        self._high_cardinality = self._high_cardinality.and_(key_value)
        return self

    def add_high_cardinality_key_values(self, key_values: Any) -> "Context":
        self._high_cardinality = self._high_cardinality.and_(key_values)
        return self

    def remove_low_cardinality_key_values(self, *keys: str) -> "Context":
        self._low_cardinality = self._low_cardinality.without(*keys)
        return self

    def remove_high_cardinality_key_values(self, *keys: str) -> "Context":
        self._high_cardinality = self._high_cardinality.without(*keys)
        return self

    def get_low_cardinality_key_value(self, key: str) -> Optional[KeyValue]:
        return self._low_cardinality.get(key)

    def get_high_cardinality_key_value(self, key: str) -> Optional[KeyValue]:
        return self._high_cardinality.get(key)

    def all_key_values(self) -> KeyValues:
        """Low then high cardinality; a high-cardinality entry wins on key collision."""
        return self._low_cardinality.and_(self._high_cardinality)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, "
            f"contextual_name={self.contextual_name!r}, "
            f"error={self.error!r}, "
            f"low_cardinality={self._low_cardinality!r}, "
            f"high_cardinality={self._high_cardinality!r})"
        )
