"""
Centralized configuration for the store platform's tenancy layer.

- dataclass + env loader, values read from OS env and an optional .env file.
- Strong typing & validation in __post_init__.
- Immutable singleton via functools.lru_cache.
- Secrets never logged (masked).
"""

from __future__ import annotations

import functools
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional, cast

from dotenv import load_dotenv


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------
def _mask_secret(value: Optional[str]) -> str:
    if not value:
        return "<unset>"
    if len(value) <= 8:
        return "***"
    return value[:2] + "…" + value[-2:]


def _get_env_str(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    v = os.getenv(key, default)
    if required and (v is None or str(v).strip() == ""):
        raise ValueError(f"Missing required env var: {key}")
    return v


def _get_env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    v = v.strip().lower()
    return v in {"1", "true", "t", "yes", "y", "on"}


def _get_env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v.strip() == "":
        return default
    try:
        return int(v)
    except ValueError:
        raise ValueError(f"Env var {key} must be an integer")


def _validate_choice(value: str, *, choices: tuple[str, ...], key: str) -> str:
    if value not in choices:
        raise ValueError(f"{key} must be one of {choices}, got {value!r}")
    return value


_MASTER_DSN_PREFIXES = ("postgresql://", "postgresql+asyncpg://", "sqlite+aiosqlite://")


def _validate_master_dsn(value: str, *, key: str) -> str:
    if not value.startswith(_MASTER_DSN_PREFIXES):
        raise ValueError(f"{key} must start with one of {_MASTER_DSN_PREFIXES}")
    return value


# ------------------------------------------------------------------------------
# Settings dataclass (immutable)
# ------------------------------------------------------------------------------
EnvName = Literal["local", "dev", "staging", "prod"]


@dataclass(frozen=True)
class Settings:
    # Environment
    environment: EnvName = "local"
    debug: bool = False
    is_testing: bool = False

    # Master database (cross-tenant records)
    master_database_url: str = field(default="")

    # Field-level secret encryption; there is no fallback key
    integration_encryption_key: str = field(default="")

    # Tenant pooling
    tenant_pool_size: int = 5
    tenant_max_overflow: int = 10
    document_store_timeout_seconds: int = 30

    # Observability
    log_level: str = "INFO"
    log_format: Optional[str] = None

    # Derived/computed flags (filled in __post_init__)
    is_prod: bool = field(init=False)
    is_staging: bool = field(init=False)
    is_dev: bool = field(init=False)
    is_local: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "environment",
            _validate_choice(self.environment, choices=("local", "dev", "staging", "prod"), key="ENVIRONMENT"),
        )
        object.__setattr__(
            self, "master_database_url",
            _validate_master_dsn(self.master_database_url, key="MASTER_DATABASE_URL"),
        )

        key = self.integration_encryption_key
        if not key or not key.strip():
            raise ValueError("INTEGRATION_ENCRYPTION_KEY must be set and non-empty")
        if len(key) < 16:
            raise ValueError("INTEGRATION_ENCRYPTION_KEY must be at least 16 characters")

        if self.tenant_pool_size <= 0:
            raise ValueError("TENANT_POOL_SIZE must be > 0")
        if self.tenant_max_overflow < 0:
            raise ValueError("TENANT_MAX_OVERFLOW must be >= 0")
        if self.document_store_timeout_seconds <= 0:
            raise ValueError("DOCUMENT_STORE_TIMEOUT_SECONDS must be > 0")

        if not re.fullmatch(r"(?i)DEBUG|INFO|WARNING|ERROR|CRITICAL", self.log_level.strip()):
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        if self.log_format is not None:
            _validate_choice(self.log_format, choices=("json", "console"), key="LOG_FORMAT")

        env = self.environment
        object.__setattr__(self, "is_prod", env == "prod")
        object.__setattr__(self, "is_staging", env == "staging")
        object.__setattr__(self, "is_dev", env == "dev")
        object.__setattr__(self, "is_local", env == "local")

    # Safe dict (for debug prints without secrets)
    def safe_dict(self) -> dict:
        return {
            "environment": self.environment,
            "debug": self.debug,
            "is_testing": self.is_testing,
            "master_database_url": "<masked>" if self.master_database_url else "<unset>",
            "integration_encryption_key": _mask_secret(self.integration_encryption_key),
            "tenant_pool_size": self.tenant_pool_size,
            "tenant_max_overflow": self.tenant_max_overflow,
            "document_store_timeout_seconds": self.document_store_timeout_seconds,
            "log_level": self.log_level,
            "log_format": self.log_format or "<derived>",
        }


# ------------------------------------------------------------------------------
# Loader (singleton)
# ------------------------------------------------------------------------------
_logger = logging.getLogger(__name__)


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    # .env at repo root (../../.env relative to src/shared/)
    env_file = Path(__file__).resolve().parent.parent.parent / ".env"
    if env_file.exists():
        load_dotenv(dotenv_path=str(env_file), override=False)

    settings = Settings(
        environment=cast(EnvName, _get_env_str("ENVIRONMENT", "local") or "local"),
        debug=_get_env_bool("DEBUG", False),
        is_testing=_get_env_bool("IS_TESTING", False),
        master_database_url=_get_env_str("MASTER_DATABASE_URL", required=True) or "",
        integration_encryption_key=_get_env_str("INTEGRATION_ENCRYPTION_KEY", required=True) or "",
        tenant_pool_size=_get_env_int("TENANT_POOL_SIZE", 5),
        tenant_max_overflow=_get_env_int("TENANT_MAX_OVERFLOW", 10),
        document_store_timeout_seconds=_get_env_int("DOCUMENT_STORE_TIMEOUT_SECONDS", 30),
        log_level=_get_env_str("LOG_LEVEL", "INFO") or "INFO",
        log_format=_get_env_str("LOG_FORMAT", None),
    )

    _logger.info("Settings loaded", extra={"settings": settings.safe_dict()})
    return settings
