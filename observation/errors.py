"""
Error taxonomy for the observation core.

Core-detected failures subclass both ObservationError and the builtin
exception a generic caller would expect, so ``except ValueError`` keeps
working around KeyValue construction and ``except KeyError`` around
context lookups.

Failures raised by handlers or by instrumented code are never wrapped:
they reach the caller exactly as raised.
"""


class ObservationError(Exception):
    """Base class for errors detected by the observation core."""


class InvalidArgument(ObservationError, ValueError):
    """A malformed KeyValue, Event or documentation entry."""


class MissingContextValue(ObservationError, KeyError):
    """A required context entry is absent."""

    def __init__(self, key):
        self.key = key
        super().__init__(f"Context has no value for {_describe_key(key)}")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class IllegalStateTransition(ObservationError, RuntimeError):
    """A lifecycle method was called out of order."""

    def __init__(self, operation: str, state, name: str = ""):
        self.operation = operation
        self.state = state
        label = f" '{name}'" if name else ""
        super().__init__(
            f"Cannot {operation}() observation{label} in state {getattr(state, 'name', state)}"
        )


def _describe_key(key) -> str:
    if isinstance(key, type):
        return f"type {key.__qualname__}"
    return repr(key)
