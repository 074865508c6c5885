"""Structured logging for Rail.

Every Rail logger lives under the ``rail`` namespace and logs through
structlog. Importing the package configures nothing. An application can
call ``configure_logging`` (or ``configure_from_options``), which
installs a single handler on the ``rail`` logger and leaves the root
logger and its handlers alone.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from rail.config import RailOptions

LOGGER_NAMESPACE = "rail"

# Name given to the handler installed here, so a reconfigure replaces it
_HANDLER_NAME = "rail.structlog"


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Path | str | None = None,
    colors: bool = True,
) -> logging.Logger:
    """Configure structured logging for the ``rail`` namespace.

    Calling it again replaces the handler installed by the previous call.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render one JSON object per line
        log_file: Append to this file instead of stderr
        colors: Use colors in console output

    Returns:
        The configured ``rail`` stdlib logger
    """
    rail_logger = logging.getLogger(LOGGER_NAMESPACE)
    for existing in rail_logger.handlers[:]:
        if existing.get_name() == _HANDLER_NAME:
            rail_logger.removeHandler(existing)
            existing.close()

    handler: logging.Handler
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(message)s"))

    rail_logger.addHandler(handler)
    rail_logger.setLevel(getattr(logging, level.upper()))
    rail_logger.propagate = False

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=colors and log_file is None))

    # Buses bind their logger at construction; caching would pin the
    # first configuration for the life of the process
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )
    return rail_logger


def configure_from_options(options: RailOptions) -> logging.Logger:
    """Configure logging from bus options.

    Debug buses log their traces at INFO; otherwise only warnings and
    handler failures get through.
    """
    return configure_logging(
        level="INFO" if options.debug else "WARNING",
        json_output=options.log_json,
        log_file=options.log_file,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger instance
    """
    return structlog.get_logger(name)
