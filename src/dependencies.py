# src/dependencies.py
from __future__ import annotations

from fastapi import Depends, Request

from src.app_context import AppContext
from src.shared.exceptions import InternalServerError
from src.shared.logging import bind_store_context
from src.tenancy.application.services.tenant_record_store import TenantRecordStore
from src.tenancy.domain.value_objects.store_id import validate_store_id
from src.tenancy.infrastructure.adapters.base import BackendAdapter
from src.tenancy.infrastructure.connection.connection_manager import ConnectionManager


def get_app_context(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "context", None)
    if ctx is None:
        raise InternalServerError("Application context is not initialised")
    return ctx


def get_connection_manager(ctx: AppContext = Depends(get_app_context)) -> ConnectionManager:
    return ctx.connections


def get_record_store(ctx: AppContext = Depends(get_app_context)) -> TenantRecordStore:
    return ctx.records


def get_store_id(store_id: str) -> str:
    """Path parameter validation; binds store_id into the log context for the request."""
    sid = validate_store_id(store_id)
    bind_store_context(store_id=sid)
    return sid


async def get_store_connection(
    store_id: str = Depends(get_store_id),
    connections: ConnectionManager = Depends(get_connection_manager),
) -> BackendAdapter:
    return await connections.get_store_connection(store_id)
