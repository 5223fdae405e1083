"""Logging setup shared by the daemon, its HTTP layer and the CLI."""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "airdaemon"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are too chatty at DEBUG level
_NOISY_LOGGERS = ("docker", "urllib3", "httpx", "httpcore")


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure the airdaemon logger hierarchy.

    Installs a single stderr handler on the ``airdaemon`` logger. Calling
    this more than once replaces the previous handler instead of stacking.

    Args:
        verbose: Log at DEBUG level.
        quiet: Only log warnings and errors. Ignored when ``verbose`` is set.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger for a module.

    Args:
        name: Usually ``__name__`` of the calling module.

    Returns:
        The module logger, a child of the ``airdaemon`` logger.
    """
    return logging.getLogger(name)
