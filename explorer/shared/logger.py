"""
Logging setup for the cinema-explorer backend.

Module loggers live under their import names (``explorer.session``,
``explorer.shared.brush_selection``, ...). Fetching and serving libraries are
kept at WARNING unless the backend itself runs at DEBUG, otherwise every
data.csv request and every brush PUT would be logged twice.

Usage:
    from explorer.shared.logger import get_logger

    logger = get_logger(__name__)
    logger.info("Loaded %d rows from %s", count, location)
"""

import logging
import sys
from typing import Union

# Third-party loggers that log once per request at INFO
CHATTY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def resolve_level(level: Union[str, int]) -> int:
    """Numeric level for a name such as ``"debug"``; unknown names give INFO."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: Union[str, int] = "INFO") -> int:
    """Configure root logging once (main.py). Returns the numeric level."""
    global _configured
    numeric = resolve_level(level)
    if _configured:
        return logging.getLogger().level

    logging.basicConfig(
        level=numeric,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    quiet = logging.DEBUG if numeric <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)

    _configured = True
    return numeric


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
