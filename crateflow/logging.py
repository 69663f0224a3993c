"""Logging helpers shared by all crateflow components."""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

from crateflow.errors import ConfigError

_ROOT_LOGGER_NAME = "crateflow"
_LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
_handler: Optional[logging.Handler] = None


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``crateflow`` hierarchy.

    Parameters
    ----------
    name : str
        The component name, e.g. ``"DependencyCache"``.

    Returns
    -------
    logging.Logger
        The logger named ``crateflow.<name>``.
    """
    if name.startswith(_ROOT_LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT_LOGGER_NAME}.{name}")


def configure_logging(level: Union[int, str] = "INFO") -> logging.Logger:
    """Install a stderr handler on the ``crateflow`` root logger.

    Calling this more than once updates the level and rebinds the handler to the current
    ``sys.stderr``; the handler is installed once.

    Parameters
    ----------
    level : Union[int, str]
        The log level, either a ``logging`` constant or its name.

    Returns
    -------
    logging.Logger
        The configured ``crateflow`` root logger.

    Raises
    ------
    ConfigError
        If ``level`` is not a known log level name.
    """
    global _handler
    if isinstance(level, str):
        level = level.upper()
        if level not in logging.getLevelNamesMapping():
            raise ConfigError(f"Unknown log level '{level}'")
    root = logging.getLogger(_ROOT_LOGGER_NAME)
    root.setLevel(level)
    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(_handler)
        root.propagate = False
    else:
        _handler.setStream(sys.stderr)
    _handler.setLevel(level)
    return root
