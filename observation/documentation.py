"""
ObservationDocumentation — static metadata for well-known operation kinds.

Instrumented libraries declare the name, prefix, key names and events of the
observations they emit. The metadata is read-only and introspectable so an
external documentation generator can list every operation without running
it. Generating documents is not this package's job.

Usage:
    class HttpServerObservation(ObservationDocumentation):
        @property
        def name(self) -> str:
            return "http.server.requests"

        @property
        def prefix(self) -> str:
            return "http."

        def get_low_cardinality_key_names(self) -> List[KeyName]:
            return [KeyName("http.method"), KeyName("http.status_code")]

    register_documentation(HttpServerObservation())

    with HttpServerObservation().observation(registry, context):
        handle(request)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from observation.errors import InvalidArgument
from observation.keyvalues import KeyValue
from observation.observation import Observation
from observation.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class KeyName:
    """A documented tag key; with_value() builds the KeyValue for it."""

    key: str
    required: bool = True

    def with_value(self, value: Any) -> KeyValue:
        return KeyValue.of(self.key, value)

    def __str__(self) -> str:
        return self.key


class ObservationDocumentation(ABC):
    """Declares the shape of one kind of observation."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Low-cardinality observation name (e.g., 'http.server.requests')."""
        ...

    @property
    def contextual_name(self) -> Optional[str]:
        return None

    @property
    def prefix(self) -> str:
        """Common prefix every key name must start with; empty for none."""
        return ""

    def get_low_cardinality_key_names(self) -> List[KeyName]:
        return []

    def get_high_cardinality_key_names(self) -> List[KeyName]:
        return []

    def get_events(self) -> List[str]:
        return []

    def observation(self, registry, context=None, provider=None):
        """Create a not-started Observation with this kind's names."""
        obs = Observation.create_not_started(self.name, registry, context, provider)
        if self.contextual_name:
            obs.contextual_name(self.contextual_name)
        return obs


class DocumentedObservation(BaseModel):
    """Read-only snapshot of registered documentation, for external tooling."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="Low-cardinality observation name")
    contextual_name: Optional[str] = Field(default=None, description="Human-readable name override")
    prefix: str = Field(default="", description="Prefix shared by all key names")
    low_cardinality_key_names: List[str] = Field(default_factory=list)
    high_cardinality_key_names: List[str] = Field(default_factory=list)
    required_key_names: List[str] = Field(default_factory=list)
    events: List[str] = Field(default_factory=list)


# Module-level registry of documented observation kinds, keyed by name
REGISTERED_DOCUMENTATION: Dict[str, DocumentedObservation] = {}


def validate_documentation(doc: ObservationDocumentation) -> Dict[str, Any]:
    """
    Check a documentation declaration for consistency.

    Returns:
        {"valid": True/False, "errors": [...]}
    """
    errors = []

    name = doc.name
    if not isinstance(name, str) or not name:
        errors.append("name must be a non-empty string")

    low = [str(k) for k in doc.get_low_cardinality_key_names()]
    high = [str(k) for k in doc.get_high_cardinality_key_names()]

    seen = set()
    for key in low + high:
        if not key:
            errors.append("key names must be non-empty")
            continue
        if key in seen:
            errors.append(f"duplicate key name: '{key}'")
        seen.add(key)

    prefix = doc.prefix or ""
    if prefix:
        for key in low + high:
            if key and not key.startswith(prefix):
                errors.append(f"key name '{key}' does not start with prefix '{prefix}'")

    for event in doc.get_events():
        if not isinstance(event, str) or not event:
            errors.append("event names must be non-empty strings")

    return {"valid": len(errors) == 0, "errors": errors}


def _snapshot(doc: ObservationDocumentation) -> DocumentedObservation:
    low = list(doc.get_low_cardinality_key_names())
    high = list(doc.get_high_cardinality_key_names())
    return DocumentedObservation(
        name=doc.name,
        contextual_name=doc.contextual_name,
        prefix=doc.prefix or "",
        low_cardinality_key_names=[str(k) for k in low],
        high_cardinality_key_names=[str(k) for k in high],
        required_key_names=[str(k) for k in low + high if getattr(k, "required", True)],
        events=list(doc.get_events()),
    )


def register_documentation(doc: ObservationDocumentation) -> DocumentedObservation:
    """
    Register a documented observation kind.

    Raises:
        InvalidArgument: If the declaration fails validate_documentation()
    """
    validation = validate_documentation(doc)
    if not validation["valid"]:
        raise InvalidArgument(
            f"Invalid observation documentation for '{doc.name}': "
            f"{', '.join(validation['errors'])}"
        )

    snapshot = _snapshot(doc)
    REGISTERED_DOCUMENTATION[snapshot.name] = snapshot
    logger.info(f"Registered observation documentation: {snapshot.name}")
    return snapshot


def get_registered_documentation() -> Dict[str, DocumentedObservation]:
    """Return a copy of the documentation registry."""
    return dict(REGISTERED_DOCUMENTATION)
