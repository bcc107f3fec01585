"""Central logging configuration for tb3."""

from __future__ import annotations

import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "tb3"
LOG_LEVEL_ENV_VAR = "TB3_LOG_LEVEL"
DEFAULT_LEVEL = "WARNING"

_configured: bool = False


def _resolve_level(level: str | None) -> int:
    """Translate a textual level into the numeric value logging expects."""
    candidate = str(level or os.environ.get(LOG_LEVEL_ENV_VAR) or DEFAULT_LEVEL).upper()
    numeric_level = logging.getLevelName(candidate)
    if isinstance(numeric_level, int):
        return numeric_level

    print(
        f"tb3: unknown log level '{candidate}', defaulting to {DEFAULT_LEVEL}.",
        file=sys.stderr,
    )
    return logging.WARNING


def configure_logging(level: str | None = None, *, force: bool = False) -> logging.Logger:
    """
    Attach a Rich handler (to stderr) to the ``tb3`` logger.

    Library modules only call ``logging.getLogger(__name__)``; this is run
    once by the CLI.  Repeated calls just adjust the level.
    """
    global _configured
    logger = logging.getLogger(LOGGER_NAME)

    if _configured and not force:
        if level is not None:
            logger.setLevel(_resolve_level(level))
        return logger

    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.setLevel(_resolve_level(level))
    logger.propagate = False

    _configured = True
    return logger


def reset_logging() -> None:
    """Tear down handlers so tests can reconfigure the logger cleanly."""
    global _configured
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.propagate = True
    _configured = False
