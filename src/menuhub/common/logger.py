"""
Logging setup for MenuHub services.
"""

import logging
import os
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_LEVEL = "INFO"


def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get a logger with a single stream handler attached.

    Args:
        name: Logger name (usually __name__)
        level: Log level name. Falls back to MENUHUB_LOG_LEVEL, then INFO.

    Returns:
        Configured logger. It does not propagate, so a parent and a child
        logger set up this way each print a record once.
    """
    logger = logging.getLogger(name)

    level_name = (level or os.environ.get("MENUHUB_LOG_LEVEL") or DEFAULT_LEVEL).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    logger.propagate = False
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger
