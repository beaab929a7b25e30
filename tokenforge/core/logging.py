"""
Provides support for logging
"""

import logging
import time
from typing import Any

from tokenforge.config import LOG_LEVEL


def configure_logging(
    level: int | str = LOG_LEVEL,
    handlers: list[logging.Handler] | None = None,
):
    """
    Configures logging format and log level.

    :param level: defaults to the TOKENFORGE_LOG_LEVEL environment variable, or WARNING if not set
    :return: None

    - log format: %(asctime)s [%(levelname)s] [%(name)s] %(message)s
    - timestamps are UTC
    - best practice is to retrieve a logger using the class name:

    >>> configure_logging(level=logging.DEBUG)
    >>> logger = logging.getLogger('Ledger')
    >>> logger.info('transaction committed') # doctest: +SKIP
    2026-10-18 14:48:20,594 [INFO] [Ledger] transaction committed

    """
    logging.Formatter.converter = time.gmtime
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] [%(name)s] %(message)s",
        level=level,
        handlers=handlers,
        force=True,
    )
    logging.captureWarnings(True)


def get_logger(obj: Any, name: str | None = None) -> logging.Logger:
    """
    Returns a logger using the class name as the logger name.
    If `name` is specifed, then it is appended to the class name: `{self.__class__.__name__}.{name}`
    """
    logger = logging.getLogger(obj.__class__.__name__)
    if name is None:
        return logger

    return logger.getChild(name)
