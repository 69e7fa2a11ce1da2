"""
Engine Logger

DESIGN DECISION: Every remote write, subscription change and migration
step is logged as a structured event. This provides:
1. Traceability of what was sent to the remote store
2. Debugging capability when clients disagree during propagation
3. A record of local mirror degradation

Events use snake_case names with keyword context, never free-form strings.
Migration runs carry a correlation ID so all their lines can be grouped.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: str = "INFO") -> None:
    """
    Route engine events to stderr at the given level.

    structlog filters by the stdlib level, so nothing below WARNING
    is emitted until this runs.
    """
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


def get_logger(name: Optional[str] = None, **context) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, optionally pre-bound with context."""
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step operation (e.g., a migration run)
    and bind it to the logger used by every step.
    """
    return uuid4()
