from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import status

from src.shared.exceptions import DomainError, NotFoundError, ValidationError


def _with_cause(details: Optional[Dict[str, Any]], cause: Optional[BaseException]) -> Optional[Dict[str, Any]]:
    if cause is None:
        return details
    merged = dict(details or {})
    merged["cause"] = {"type": type(cause).__name__, "message": str(cause)}
    return merged


class InvalidStoreIdError(ValidationError):
    code = "invalid_store_id"
    status_code = status.HTTP_400_BAD_REQUEST


class ConfigNotFoundError(NotFoundError):
    """No active descriptor (or integration record) exists for the store."""
    code = "config_not_found"


class UnsupportedBackendTypeError(DomainError):
    code = "unsupported_backend_type"
    status_code = 422


class UnsupportedOperationError(DomainError):
    """Raw SQL requested against a backend that only speaks its native query builder."""
    code = "unsupported_operation"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStatusError(DomainError):
    code = "invalid_status"
    status_code = 422


class StoreConnectionError(DomainError):
    """
    Building a tenant handle failed: credential decryption, missing credential
    fields, driver handshake or the post-construction probe.
    The underlying driver message is kept in `details["cause"]`.
    """
    code = "connection_error"
    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(
        self,
        message: str = "",
        *,
        store_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        base = dict(details or {})
        if store_id is not None:
            base["store_id"] = store_id
        super().__init__(message, details=_with_cause(base, cause) or None)
        self.store_id = store_id
        self.cause = cause
