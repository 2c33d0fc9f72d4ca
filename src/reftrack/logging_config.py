"""Logging configuration.

Everything goes through structlog as snake_case events with key/value
context. String values under secret-looking keys are masked before
rendering; lengths and flags about secrets stay visible.
"""

import logging
import sys
from typing import Any

import structlog

from reftrack.settings import Settings, settings as default_settings

SENSITIVE_KEY_FRAGMENTS = ("secret", "token", "password", "authorization", "api_key", "admin_key")
REDACTED = "***"

# Chatty at INFO: one line per outbound request
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask string values whose key names a credential."""
    for key, value in event_dict.items():
        if not isinstance(value, str) or key == "event":
            continue
        lowered = key.lower()
        if any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS):
            event_dict[key] = REDACTED
    return event_dict


def _renderer(settings: Settings):
    if settings.log_format == "json":
        return [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.dev.ConsoleRenderer(),
    ]


def configure_logging(settings: Settings | None = None) -> None:
    """Configure structured logging for the API, CLI and workers.

    Args:
        settings: Settings to read level and format from (defaults to the
            environment)
    """
    settings = settings or default_settings
    level = logging.getLevelName(settings.log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            redact_secrets,
            *_renderer(settings),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=settings.app_name, env=settings.env)

    # Standard logging for uvicorn, SQLAlchemy and httpx
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance."""
    return structlog.get_logger(name)
