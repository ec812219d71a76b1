"""
KeyValuesProvider — derives tags for an observation from its Context.

Global providers live on the registry and apply to every observation whose
context they support. An observation may also carry one override provider
from its call site; its output is merged last so it wins on key collision.

Providers run at START and again at STOP. The STOP pass replaces what the
START pass wrote: a key a provider emitted at START but no longer emits at
STOP is removed from the context. Keys set directly on the observation are
left alone unless a provider wrote the same key.

Usage:
    class RegionProvider(KeyValuesProvider):
        def supports_context(self, context: Context) -> bool:
            return True

        def get_low_cardinality_key_values(self, context: Context) -> KeyValues:
            return KeyValues.of("region", settings.region)

    registry.key_values_provider(RegionProvider())
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Tuple

from observation.context import Context
from observation.keyvalues import KeyValues

# (low_keys, high_keys) written by one apply_providers() pass
ProvidedKeys = Tuple[Tuple[str, ...], Tuple[str, ...]]


class KeyValuesProvider(ABC):
    """
    Strategy producing low/high cardinality KeyValues for a Context.

    supports_context() is called for every provider on every START and STOP,
    so it must be pure and cheap. A provider that does not support a context
    is skipped, which is not an error.
    """

    @abstractmethod
    def supports_context(self, context: Context) -> bool:
        ...

    def get_low_cardinality_key_values(self, context: Context) -> KeyValues:
        return KeyValues.empty()

    def get_high_cardinality_key_values(self, context: Context) -> KeyValues:
        return KeyValues.empty()

    def get_name(self, context: Context) -> Optional[str]:
        """Override for the observation's name, or None to keep it."""
        return None

    def get_contextual_name(self, context: Context) -> Optional[str]:
        """Override for the observation's contextual name, or None to keep it."""
        return None


def applicable_providers(
    global_providers: Iterable[KeyValuesProvider],
    override: Optional[KeyValuesProvider],
    context: Context,
) -> Tuple[KeyValuesProvider, ...]:
    """Globals in registration order, then the override; unsupported ones dropped."""
    chain = [p for p in global_providers if p.supports_context(context)]
    if override is not None and override.supports_context(context):
        chain.append(override)
    return tuple(chain)


def compose_key_values(
    providers: Iterable[KeyValuesProvider],
    context: Context,
) -> Tuple[KeyValues, KeyValues]:
    """
    Merge the output of every provider that supports ``context``.

    Providers are merged in iteration order with KeyValues.and_(), so a
    later provider wins on key collision.

    Returns:
        (low_cardinality, high_cardinality)
    """
    low = KeyValues.empty()
    high = KeyValues.empty()
    for provider in providers:
        if not provider.supports_context(context):
            continue
        low = low.and_(provider.get_low_cardinality_key_values(context))
        high = high.and_(provider.get_high_cardinality_key_values(context))
    return low, high


def apply_providers(
    providers: Tuple[KeyValuesProvider, ...],
    context: Context,
    previous: Optional[ProvidedKeys] = None,
) -> ProvidedKeys:
    """
    Write the composed key values and any name overrides into ``context``.

    ``providers`` is expected to be the output of applicable_providers(); the
    last provider returning a name or contextual name wins.

    Args:
        previous: Keys returned by an earlier call for the same context. Any
            of them the providers no longer emit are removed, so the STOP pass
            replaces the START pass instead of accumulating on top of it.

    Returns:
        (low_keys, high_keys) written by this call.
    """
    low, high = compose_key_values(providers, context)
    if previous is not None:
        previous_low, previous_high = previous
        context.remove_low_cardinality_key_values(*[k for k in previous_low if k not in low])
        context.remove_high_cardinality_key_values(*[k for k in previous_high if k not in high])
    context.add_low_cardinality_key_values(low)
    context.add_high_cardinality_key_values(high)

    for provider in providers:
        name = provider.get_name(context)
        if name:
            context.set_name(name)
        contextual_name = provider.get_contextual_name(context)
        if contextual_name:
            context.set_contextual_name(contextual_name)
    return tuple(low.keys()), tuple(high.keys())
