"""
Structured logging using structlog with:
- JSON/console switchable format
- Store context bound through contextvars
- Secret redaction (credential keys, "encrypted:" ciphertext, DSN passwords)
- Safe defaults for Uvicorn/SQLAlchemy/Alembic/httpx

"""

from __future__ import annotations

import logging
import logging.config
import re
import sys
from typing import Any, Iterable, Optional

import structlog
from pythonjsonlogger import jsonlogger

from src.shared.config import Settings

# ---------------------------------------------------------------------
# Secret redaction
# ---------------------------------------------------------------------


class SecretRedactionProcessor:
    """
    Structlog processor that redacts credential material inside event_dict (recursively).
    - Values under sensitive keys: fully redacted.
    - Strings carrying the cipher marker: fully redacted.
    - Passwords embedded in DSNs: masked.
    """
    SENSITIVE_KEYS = frozenset({
        "password",
        "passwd",
        "secret",
        "access_token",
        "accesstoken",
        "refresh_token",
        "refreshtoken",
        "service_role_key",
        "servicerolekey",
        "service_key",
        "api_key",
        "apikey",
        "connection_string",
        "connectionstring",
        "connection_string_encrypted",
        "credentials",
        "private_key",
        "privatekey",
    })
    P_DSN_PASSWORD = re.compile(r"(?P<scheme>[a-z][a-z0-9+.-]*://[^:/@\s]+):[^@\s]+@")
    MARKER = "encrypted:"

    def __call__(self, logger, method_name, event_dict):
        return self._redact(event_dict)

    def _redact(self, value: Any, key: Optional[str] = None) -> Any:
        if key is not None and key.lower().replace("-", "_") in self.SENSITIVE_KEYS:
            return "***REDACTED***"
        if isinstance(value, dict):
            return {k: self._redact(v, str(k)) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._redact(v) for v in value]
        if isinstance(value, str):
            return self._redact_str(value)
        return value

    def _redact_str(self, s: str) -> str:
        if s.startswith(self.MARKER):
            return "***REDACTED***"
        return self.P_DSN_PASSWORD.sub(r"\g<scheme>:***@", s)


# ---------------------------------------------------------------------
# Context processors
# ---------------------------------------------------------------------


def add_store_context(logger, method_name, event_dict):
    """Copy the bound store identifier (if any) into the event."""
    ctx = structlog.contextvars.get_contextvars()
    for key in ("store_id", "correlation_id"):
        if key in ctx and key not in event_dict:
            event_dict[key] = ctx[key]
    return event_dict


# ---------------------------------------------------------------------
# Public helpers to use from API/worker code
# ---------------------------------------------------------------------


def bind_store_context(*, store_id: Optional[str] = None, correlation_id: Optional[str] = None) -> None:
    """Bind store-scoped fields for all subsequent log entries in this context."""
    payload = {k: v for k, v in dict(store_id=store_id, correlation_id=correlation_id).items() if v is not None}
    if payload:
        structlog.contextvars.bind_contextvars(**payload)


def clear_store_context() -> None:
    """Clear all bound contextvars (call at end of request/worker job)."""
    structlog.contextvars.clear_contextvars()


# ---------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------

def _ensure_log_format(settings: Settings) -> str:
    """
    Determine output format:
      - settings.log_format when set ("json"|"console").
      - Else default: "console" for local/dev, "json" for staging/prod.
    """
    if settings.log_format in ("json", "console"):
        return settings.log_format
    return "console" if settings.is_local or settings.is_dev else "json"


def _level_name_to_int(level: str) -> int:
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(settings: Settings) -> None:
    """Idempotent structured logging configuration."""
    log_format = _ensure_log_format(settings)
    is_prod_like = settings.is_prod or settings.is_staging

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": jsonlogger.JsonFormatter,
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S",
            },
            "console": {
                "format": "%(asctime)s - %(levelname)s - %(name)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json" if log_format == "json" else "console",
                "stream": sys.stdout,
            },
        },
        "root": {
            "level": _level_name_to_int(settings.log_level),
            "handlers": ["console"],
        },
        "loggers": {
            # Quiet noisy libs, but keep errors
            "uvicorn.error": {"level": "INFO", "handlers": ["console"], "propagate": False},
            "uvicorn.access": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "sqlalchemy.engine": {
                "level": "WARNING" if is_prod_like else "INFO",
                "handlers": ["console"],
                "propagate": False,
            },
            "httpx": {"level": "WARNING", "handlers": ["console"], "propagate": False},
            "alembic": {"level": "INFO", "handlers": ["console"], "propagate": False},
        },
    }
    logging.config.dictConfig(logging_config)

    processors: Iterable[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_store_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        # Credentials are redacted in every environment
        SecretRedactionProcessor(),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        (structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer()),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
