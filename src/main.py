from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request

from src.app_context import AppContext
from src.shared.config import Settings, get_settings
from src.shared.exceptions import register_exception_handlers  # central mapping
from src.shared.logging import bind_store_context, clear_store_context, get_logger, setup_logging
from src.tenancy.api.routes import health_router, router as tenancy_router

logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    context: Optional[AppContext] = None,
) -> FastAPI:
    """
    The ASGI server translates SIGTERM/SIGINT into lifespan shutdown, which
    closes every tenant handle and the master handle.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = settings or get_settings()
        setup_logging(cfg)
        ctx = context or AppContext.build(cfg)
        app.state.context = ctx
        logger.info("Application started", settings=cfg.safe_dict())
        try:
            yield
        finally:
            await ctx.close()
            app.state.context = None
            logger.info("Application stopped")

    app = FastAPI(
        title="Store Tenancy - Connection Resolution API",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def correlation_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        bind_store_context(correlation_id=request_id)
        try:
            response = await call_next(request)
        finally:
            clear_store_context()
        response.headers["X-Request-ID"] = request_id
        return response

    app.include_router(tenancy_router)
    app.include_router(health_router)

    # Centralized error handling → {code, message, details?, correlation_id?}
    register_exception_handlers(app)

    @app.get("/", tags=["Root"])
    async def root():
        return {"message": "Store Tenancy API", "docs": "/docs", "health": "/_health/master"}

    return app


app = create_app()
