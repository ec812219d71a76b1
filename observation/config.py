"""
Environment-driven settings for the observation core.

Read once at import. Registries created without an explicit ``enabled``
argument take OBSERVATION_ENABLED as their default.
"""

import os

_FALSY = {"0", "false", "no", "off"}


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() not in _FALSY


OBSERVATION_ENABLED: bool = _env_flag("OBSERVATION_ENABLED", True)
OBSERVATION_LOG_LEVEL: str = os.getenv("OBSERVATION_LOG_LEVEL", "WARNING").upper()
