"""Structured logging setup for org_outline."""

import os
import sys
from pathlib import Path
from typing import Any, Optional

import structlog

VALID_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def configure_logging(level: Optional[str] = None, log_file: Optional[Path] = None) -> None:
    """
    Configure structlog for JSON logging.

    Log level can be controlled via ORG_OUTLINE_LOG_LEVEL environment variable:
    - Set to "DEBUG" to see parse/format start and completion events
    - Defaults to "WARNING" if not set

    Log levels:
    - DEBUG: Parse and format progress (sizes, heading counts)
    - WARNING: Accepted-but-suspicious input (heading levels out of range)
    - ERROR: Not used by the core; parse failures are logged as warnings
      and raised to the caller

    Args:
        level: Explicit level; overrides the environment variable
        log_file: Append JSON lines to this file instead of stderr

    Example:
        # Enable debug logging
        export ORG_OUTLINE_LOG_LEVEL=DEBUG

        # View logs with jq for readability:
        tail -f org-outline.log | jq .
    """
    log_level = (level or os.environ.get("ORG_OUTLINE_LOG_LEVEL", "WARNING")).upper()

    if log_level not in VALID_LEVELS:
        log_level = "WARNING"

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        output = open(log_file, "a")
    else:
        output = sys.stderr

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Does not configure structlog; applications call configure_logging()
    once at startup.

    Args:
        name: Logger name (typically __name__ of calling module)

    Returns:
        Structured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.debug("parse_started", length=120)
    """
    return structlog.get_logger(name)
