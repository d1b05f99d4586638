"""
Structured logging setup.

All services log through structlog with key/value context instead of
formatted strings:

    logger = get_logger(__name__)
    logger.warning("login_failed", account_kind="user", reason="bad_password")

configure_logging() is called once from the application lifespan. Until then
structlog's defaults apply, which keeps imports side-effect free for tests.

Credential material must never reach a log sink. The redaction processor masks
any value whose key looks like a password, secret, token, code or email, so an
accidental `logger.info("x", refresh_token=...)` does not leak the token.
"""

import logging
from typing import Any

import structlog

_SENSITIVE_KEYS = ("password", "secret", "token", "code", "email", "authorization")


def _redact_sensitive(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mask values of sensitive keys, keeping two chars at each end for debugging."""
    for key in list(event_dict.keys()):
        if key == "event":
            continue
        if any(marker in key.lower() for marker in _SENSITIVE_KEYS):
            value = event_dict[key]
            if isinstance(value, str) and len(value) > 6:
                event_dict[key] = value[:2] + "***" + value[-2:]
            elif value is not None:
                event_dict[key] = "***"
    return event_dict


def mask_identifier(identifier: str) -> str:
    """Partially hide an email address or phone number, e.g. "al***@example.com"."""
    if "@" in identifier:
        local, domain = identifier.split("@", 1)
        return f"{local[:2]}***"
    return f"***{identifier[-4:]}"


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """
    Configure structlog processors.

    Args:
        log_level: Minimum level (DEBUG, INFO, WARNING, ERROR).
        json_output: JSON lines for production; coloured console output otherwise.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_sensitive,
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
