"""Structured logging configuration using structlog."""

import logging
import re
import sys

import structlog

# Patterns to redact from log output
_REDACT_PATTERNS = [
    # Graph API access tokens (EAA...) and Bearer tokens
    (re.compile(r"(EAA[a-zA-Z0-9]{4})[a-zA-Z0-9]{20,}"), r"\1...REDACTED"),
    (re.compile(r"(Bearer\s+)[a-zA-Z0-9_.-]{20,}"), r"\1REDACTED"),
    # Webhook signatures
    (re.compile(r"(sha256=)[a-f0-9]{64}"), r"\1REDACTED"),
    # secret=..., token=... in key=value text
    (re.compile(r"((?:secret|token)['\"]?\s*[:=]\s*['\"]?)[a-zA-Z0-9_-]{8,}"), r"\1REDACTED"),
    # E.164 phone numbers
    (re.compile(r"\+\d{10,15}\b"), "REDACTED_PHONE"),
]

# Keys whose values are always replaced, whatever they contain
_SECRET_KEYS = {"app_secret", "access_token", "verify_token", "signature"}


def _redact_sensitive(_, __, event_dict: dict) -> dict:
    """Structlog processor to redact tokens, signatures and phone numbers."""
    for key, value in event_dict.items():
        if key in _SECRET_KEYS and value:
            event_dict[key] = "REDACTED"
        elif isinstance(value, str):
            for pattern, replacement in _REDACT_PATTERNS:
                value = pattern.sub(replacement, value)
            event_dict[key] = value
    return event_dict


def setup_logging(json_mode: bool = False, level: str = "INFO") -> None:
    """Configure structlog with appropriate renderer.

    Args:
        json_mode: Use JSON renderer (for the web service).
                   False = console renderer (for CLI).
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _redact_sensitive,
    ]

    if json_mode:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stderr keeps stdout clean for exported JSON
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level)
