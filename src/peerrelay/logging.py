"""Logging configuration for the relay server.

The relay logs under ``peerrelay``. aiohttp reports access lines and
handler failures on its own loggers; those get the same handlers so one
log file or console shows both.
"""

import logging
from pathlib import Path

from peerrelay.config import Config

RELAY_LOGGER = "peerrelay"
AIOHTTP_LOGGERS = ("aiohttp.access", "aiohttp.server", "aiohttp.web")

# 2025-01-27 10:30:45 [INFO] peerrelay.registry: Peer connected: alice (1 peers connected)
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured: list[logging.Logger] = []


def _build_handlers(config: Config) -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(config: Config) -> logging.Logger:
    """Set up the relay and aiohttp loggers from configuration.

    Calling this more than once returns the relay logger configured the
    first time.

    Args:
        config: Configuration object with log settings.

    Returns:
        The ``peerrelay`` logger.
    """
    if _configured:
        return _configured[0]

    level = getattr(logging, config.log_level.upper(), logging.INFO)
    handlers = _build_handlers(config)

    for name in (RELAY_LOGGER, *AIOHTTP_LOGGERS):
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers.clear()
        for handler in handlers:
            logger.addHandler(handler)
        logger.propagate = False
        _configured.append(logger)

    return _configured[0]


def reset_logging() -> None:
    """Detach configured handlers. Used for testing."""
    closed = set()
    for logger in _configured:
        for handler in logger.handlers:
            if id(handler) not in closed:
                handler.close()
                closed.add(id(handler))
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
    _configured.clear()
