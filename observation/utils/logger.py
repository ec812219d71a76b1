"""
Logger factory shared by every module in the package.

Usage:
    from observation.utils.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Registered observation handler: TimerHandler")
"""

import logging

from observation.config import OBSERVATION_LOG_LEVEL

_ROOT_NAME = "observation"
_configured = False


def _configure_root() -> None:
    global _configured
    if _configured:
        return
    root = logging.getLogger(_ROOT_NAME)
    level = logging.getLevelName(OBSERVATION_LOG_LEVEL)
    root.setLevel(level if isinstance(level, int) else logging.WARNING)
    # Library logger: the application decides where records go
    root.addHandler(logging.NullHandler())
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a stdlib logger under the package's logger hierarchy."""
    _configure_root()
    if name != _ROOT_NAME and not name.startswith(_ROOT_NAME + "."):
        name = f"{_ROOT_NAME}.{name}"
    return logging.getLogger(name)
