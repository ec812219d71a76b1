"""
KeyValue / KeyValues — immutable tags attached to an observation.

Low-cardinality key values are safe for backends with dimensionality limits
(metrics); high-cardinality ones only for unlimited-dimension backends
(traces). Both use the same types.

Usage:
    from observation.keyvalues import KeyValue, KeyValues

    base = KeyValues.of("region", "us", "tier", "free")
    tags = base.and_(KeyValue.of("tier", "gold"), {"env": "prod"})
    # tags == KeyValues.of("region", "us", "tier", "gold", "env", "prod")
"""

from dataclasses import dataclass
from collections.abc import Mapping
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from observation.errors import InvalidArgument


@dataclass(frozen=True)
class KeyValue:
    """A single immutable key/value pair."""

    key: str
    value: str

    # Conventional value for a low-cardinality key with nothing to report
    NONE_VALUE = "none"

    @classmethod
    def of(cls, key: str, value: Any) -> "KeyValue":
        if not isinstance(key, str) or not key:
            raise InvalidArgument(f"KeyValue key must be a non-empty string, got {key!r}")
        if value is None:
            raise InvalidArgument(f"KeyValue value for '{key}' must not be None")
        return cls(key=key, value=value if isinstance(value, str) else str(value))

    def __str__(self) -> str:
        return f"{self.key}={self.value}"


def _coerce(items: Tuple[Any, ...]) -> List[KeyValue]:
    """Turn the loose argument forms accepted by of()/and_() into KeyValues."""
    if not items:
        return []

    if all(isinstance(i, str) for i in items):
        if len(items) % 2:
            raise InvalidArgument(
                f"Key/value strings must come in pairs, got {len(items)} values"
            )
        return [KeyValue.of(items[i], items[i + 1]) for i in range(0, len(items), 2)]

    result: List[KeyValue] = []
    for item in items:
        if isinstance(item, KeyValue):
            result.append(item)
        elif isinstance(item, KeyValues):
            result.extend(item)
        elif isinstance(item, Mapping):
            result.extend(KeyValue.of(k, v) for k, v in item.items())
        elif hasattr(item, "__iter__") and not isinstance(item, str):
            for kv in item:
                if not isinstance(kv, KeyValue):
                    raise InvalidArgument(f"Expected KeyValue, got {type(kv).__name__}")
                result.append(kv)
        else:
            raise InvalidArgument(f"Cannot build KeyValues from {type(item).__name__}")
    return result


def _merge(base: Iterable[KeyValue], updates: Iterable[KeyValue]) -> Tuple[KeyValue, ...]:
    # dict keeps first-insertion order and lets later writes replace the value
    merged: Dict[str, KeyValue] = {}
    for kv in base:
        merged[kv.key] = kv
    for kv in updates:
        merged[kv.key] = kv
    return tuple(merged.values())


@dataclass(frozen=True)
class KeyValues:
    """
    Ordered collection of KeyValue with unique keys.

    Construction and and_() never mutate; for a repeated key the last value
    wins while the key keeps the position where it was first seen.
    """

    _key_values: Tuple[KeyValue, ...] = ()

    @classmethod
    def empty(cls) -> "KeyValues":
        return _EMPTY

    @classmethod
    def of(cls, *items: Any) -> "KeyValues":
        """
        Build from KeyValue instances, alternating key/value strings,
        mappings, other KeyValues, or iterables of KeyValue.
        """
        key_values = _coerce(items)
        if not key_values:
            return _EMPTY
        return cls(_merge((), key_values))

    def and_(self, *others: Any) -> "KeyValues":
        """Return a copy where entries from ``others`` override same-keyed entries."""
        updates = _coerce(others)
        if not updates:
            return self
        if not self._key_values:
            return KeyValues(_merge((), updates))
        return KeyValues(_merge(self._key_values, updates))

    def without(self, *keys: str) -> "KeyValues":
        """Return a copy with the given keys removed."""
        drop = set(keys)
        return KeyValues(tuple(kv for kv in self._key_values if kv.key not in drop))

    def get(self, key: str) -> Optional[KeyValue]:
        for kv in self._key_values:
            if kv.key == key:
                return kv
        return None

    def keys(self) -> List[str]:
        return [kv.key for kv in self._key_values]

    def to_dict(self) -> Dict[str, str]:
        return {kv.key: kv.value for kv in self._key_values}

    def __iter__(self) -> Iterator[KeyValue]:
        return iter(self._key_values)

    def __len__(self) -> int:
        return len(self._key_values)

    def __bool__(self) -> bool:
        return bool(self._key_values)

    def __contains__(self, key: object) -> bool:
        if isinstance(key, KeyValue):
            return key in self._key_values
        return any(kv.key == key for kv in self._key_values)

    def __repr__(self) -> str:
        inner = ", ".join(str(kv) for kv in self._key_values)
        return f"KeyValues[{inner}]"


_EMPTY = KeyValues()
