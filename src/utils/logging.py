"""Structured logging for Reco: secrets and full phone numbers stay out of the logs."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

from src.constants import PROJECT_NAME, SENSITIVE_PATTERNS

_COMPILED_PATTERNS = [re.compile(p) for p in SENSITIVE_PATTERNS]


def _redact_secrets(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Processor that redacts credentials from all string log fields."""
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = redact(value)
        elif isinstance(value, dict):
            event_dict[key] = {
                k: redact(v) if isinstance(v, str) else v for k, v in value.items()
            }
    return event_dict


def _add_service(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict["service"] = PROJECT_NAME
    return event_dict


def redact(text: str) -> str:
    """Replace any credential-looking substrings with [REDACTED]."""
    for pattern in _COMPILED_PATTERNS:
        text = pattern.sub("[REDACTED]", text)
    return text


def mask_user_key(user_key: str) -> str:
    """Shorten a phone-like user key for log output: +34600123456 -> +34*****3456."""
    if len(user_key) <= 7:
        return "*" * len(user_key)
    return f"{user_key[:3]}{'*' * (len(user_key) - 7)}{user_key[-4:]}"


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure structured logging for Reco.

    Output goes to stderr, one event per line, with ISO timestamps,
    log level and service name. Credentials are redacted before rendering.
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _add_service,
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper()) if level.upper() in _LEVELS else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "") -> structlog.BoundLogger:
    """Get a logger bound to a component name."""
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(component=name)
    return logger


_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
