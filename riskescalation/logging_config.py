"""
Structured logging setup.

structlog over the stdlib logging module; JSON in production, console
renderer in development. Request-scoped values bound through
``structlog.contextvars`` (request_id, method, path) are merged into
every event.
"""

import logging
import sys

import structlog

from riskescalation.config import settings


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Configure structlog + stdlib logging. Safe to call more than once."""
    level_name = (level or settings.log_level).upper()
    fmt = (log_format or settings.log_format).lower()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if fmt == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def mask_phone(number: str | None) -> str:
    """Keep only the last 3 digits of a phone number for logs."""
    if not number:
        return ""
    return f"***{number[-3:]}"


def mask_email(address: str | None) -> str:
    """Keep the first character of the local part and the domain."""
    if not address or "@" not in address:
        return ""
    local, domain = address.split("@", 1)
    return f"{local[:1]}***@{domain}"
