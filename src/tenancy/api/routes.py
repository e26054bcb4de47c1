from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from src.dependencies import get_app_context, get_connection_manager, get_store_id
from src.app_context import AppContext
from src.tenancy.api.schemas import ConnectionInfoResponse, ConnectionTestResponse

router = APIRouter(prefix="/api/v1/stores", tags=["tenancy:database"])
health_router = APIRouter(tags=["Health"])


@router.get("/{store_id}/database", response_model=ConnectionInfoResponse)
async def get_database_info(
    store_id: str = Depends(get_store_id),
    connections=Depends(get_connection_manager),
):
    return await connections.get_connection_info(store_id)


@router.post("/{store_id}/database/test", response_model=ConnectionTestResponse)
async def test_database_connection(
    store_id: str = Depends(get_store_id),
    connections=Depends(get_connection_manager),
):
    result = await connections.test_store_connection(store_id)
    return result.to_dict()


@health_router.get("/_health/master")
async def health_master(ctx: AppContext = Depends(get_app_context)):
    report = await ctx.master.health_check()
    if report["status"] != "healthy":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"service": "master_db", **report},
        )
    return {"service": "master_db", **report}
