from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.shared.config import Settings, get_settings
from src.shared.logging import get_logger
from src.tenancy.infrastructure.adapters.relational import PostgresAdapter, RelationalAdapter

logger = get_logger(__name__)


class MasterDatabase:
    """
    Lazily-built, process-wide handle to the platform (master) database.

    The first caller builds the engine and runs the SELECT 1 smoke test under a
    lock; every later caller gets the same handle. Only close() drops it.
    """

    def __init__(self, url: Optional[str] = None, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        raw = url or self._settings.master_database_url
        parsed = make_url(raw)
        if parsed.drivername == "postgresql":
            parsed = parsed.set(drivername="postgresql+asyncpg")
        self._url = parsed
        self._adapter: Optional[RelationalAdapter] = None
        self._sessions: Optional[async_sessionmaker[AsyncSession]] = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._adapter is not None

    async def get_adapter(self) -> RelationalAdapter:
        if self._adapter is not None:
            return self._adapter
        async with self._lock:
            if self._adapter is None:
                adapter = PostgresAdapter(self._url, self._settings)
                await adapter.connect()
                try:
                    await adapter.probe()
                except Exception:
                    await adapter.close()
                    raise
                self._sessions = async_sessionmaker(
                    bind=adapter.engine,
                    class_=AsyncSession,
                    expire_on_commit=False,
                )
                self._adapter = adapter
                logger.info("Master database connection established", host=adapter.host)
        return self._adapter

    async def get_engine(self) -> AsyncEngine:
        return (await self.get_adapter()).engine

    async def sessions(self) -> async_sessionmaker[AsyncSession]:
        await self.get_adapter()
        assert self._sessions is not None
        return self._sessions

    async def health_check(self) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            adapter = await self.get_adapter()
            await adapter.probe()
            return {
                "status": "healthy",
                "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
            }
        except Exception as exc:
            logger.error("Master database health check failed", error=str(exc))
            return {
                "status": "unhealthy",
                "error": type(exc).__name__,
                "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
            }

    async def close(self) -> None:
        async with self._lock:
            adapter, self._adapter = self._adapter, None
            self._sessions = None
        if adapter is not None:
            await adapter.close()
            logger.info("Master database engine disposed")
