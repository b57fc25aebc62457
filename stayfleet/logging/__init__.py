"""Structured logging configuration using structlog."""

import logging
import re
import sys

import structlog

# Keys whose values must never reach the log stream in clear text
SENSITIVE_KEYS = frozenset(
    {
        "phone",
        "address",
        "special_requests",
        "payment_method",
        "encryption_key",
        "password",
    }
)

# Fernet tokens always start with the version byte 0x80, "gAAAAA" once base64 encoded
_FERNET_TOKEN_PATTERN = re.compile(r"gAAAAA[A-Za-z0-9_\-=]{40,}")

_MASK = "<REDACTED>"


class CiphertextRedactingFilter(logging.Filter):
    """Filter that redacts Fernet ciphertext from stdlib log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact ciphertext from log message."""
        if record.msg and isinstance(record.msg, str):
            record.msg = _FERNET_TOKEN_PATTERN.sub(_MASK, record.msg)
        if record.args:
            record.args = tuple(
                _FERNET_TOKEN_PATTERN.sub(_MASK, arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def _mask_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    """Structlog processor masking personal data and ciphertext in events."""
    for key, value in list(event_dict.items()):
        if key in SENSITIVE_KEYS and value:
            event_dict[key] = _MASK
        elif isinstance(value, str):
            event_dict[key] = _FERNET_TOKEN_PATTERN.sub(_MASK, value)
    return event_dict


def setup_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    level = getattr(logging, log_level.upper())
    redacting_filter = CiphertextRedactingFilter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    root_logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.addFilter(redacting_filter)
    root_logger.addHandler(handler)

    # SQL echo can print bound parameters, which include ciphertext
    for logger_name in ("sqlalchemy.engine", "alembic"):
        logging.getLogger(logger_name).addFilter(redacting_filter)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _mask_sensitive_fields,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
