"""Structured logging for the portability engine.

Console output by default, JSON lines when ``HONTODANA_LOG_JSON`` is set.
"""

import logging
import sys
from typing import Optional

import structlog
from structlog.types import Processor

_configured = False


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Log level name. Defaults to the configured level.
        json_output: Render JSON lines instead of console output.
    """
    global _configured

    if level is None or json_output is None:
        from .config import get_config

        config = get_config()
        level = level or config.log_level
        json_output = config.log_json if json_output is None else json_output

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    structlog.configure(
        processors=shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    # Replace our own handler on reconfiguration
    for existing in list(root_logger.handlers):
        if getattr(existing, "_hontodana", False):
            root_logger.removeHandler(existing)
    handler._hontodana = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance."""
    if not _configured:
        setup_logging()
    return structlog.get_logger(name)
