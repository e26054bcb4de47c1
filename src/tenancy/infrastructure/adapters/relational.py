from __future__ import annotations

import ssl
from typing import Any, Dict, List, Mapping, Optional, Union

import sqlalchemy as sa
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from src.shared.config import Settings, get_settings
from src.shared.logging import get_logger
from src.tenancy.domain.entities.store_database import DatabaseType
from src.tenancy.domain.exceptions import StoreConnectionError
from src.tenancy.infrastructure.adapters.base import BackendAdapter

logger = get_logger(__name__)


def _is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on", "require", "required"}
    return bool(value)


class RelationalAdapter(BackendAdapter):
    """
    Pooled SQLAlchemy AsyncEngine over one tenant database.

    Pool sizing comes from Settings (TENANT_POOL_SIZE / TENANT_MAX_OVERFLOW);
    SQLite URLs and IS_TESTING run without a pool (NullPool).
    """
    database_type = DatabaseType.POSTGRESQL
    default_port: int = 5432
    default_user: str = "postgres"
    drivername: str = "postgresql+asyncpg"

    def __init__(
        self,
        url: Union[str, URL],
        settings: Optional[Settings] = None,
        *,
        connect_args: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._url = make_url(url) if isinstance(url, str) else url
        self._settings = settings or get_settings()
        self._connect_args = connect_args or {}
        self._engine: Optional[AsyncEngine] = None

    @property
    def host(self) -> Optional[str]:
        return self._url.host

    @property
    def url(self) -> URL:
        return self._url

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Adapter not connected. Call connect() first.")
        return self._engine

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    async def connect(self) -> None:
        if self._engine is not None:
            return
        echo = self._settings.debug and not self._settings.is_prod
        if self._url.get_backend_name() == "sqlite" or self._settings.is_testing:
            self._engine = create_async_engine(
                self._url, echo=echo, poolclass=NullPool, connect_args=self._connect_args
            )
        else:
            self._engine = create_async_engine(
                self._url,
                echo=echo,
                pool_size=self._settings.tenant_pool_size,
                max_overflow=self._settings.tenant_max_overflow,
                pool_timeout=30,
                pool_recycle=3600,
                pool_pre_ping=True,
                connect_args=self._connect_args,
            )
        logger.debug("Tenant engine created", database_type=self.database_type.value, host=self.host)

    async def probe(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(sa.text("SELECT 1"))

    async def query(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        async with self.engine.begin() as conn:
            result = await conn.execute(sa.text(sql), dict(params or {}))
            if not result.returns_rows:
                return []
            return [dict(row._mapping) for row in result]

    async def close(self) -> None:
        engine, self._engine = self._engine, None
        if engine is not None:
            await engine.dispose()
            logger.debug("Tenant engine disposed", database_type=self.database_type.value, host=self.host)

    # ---------- construction from decrypted credentials ----------

    @classmethod
    def build_url(cls, credentials: Mapping[str, Any]) -> URL:
        """
        host + database are required (directly or through a connectionString URL);
        port, user and password fall back to the backend defaults.
        """
        base: Dict[str, Any] = {}
        conn_str = credentials.get("connectionString") or credentials.get("connection_string")
        if conn_str:
            try:
                parsed = make_url(str(conn_str))
            except ArgumentError as exc:
                raise StoreConnectionError("Invalid connectionString in credentials", cause=exc) from exc
            base = {
                "host": parsed.host,
                "port": parsed.port,
                "user": parsed.username,
                "password": parsed.password,
                "database": parsed.database,
            }
        merged = {k: v for k, v in base.items() if v not in (None, "")}
        for key in ("host", "port", "user", "password", "database"):
            if credentials.get(key) not in (None, ""):
                merged[key] = credentials[key]

        missing = [k for k in ("host", "database") if not merged.get(k)]
        if missing:
            raise StoreConnectionError(
                f"Missing required credential fields: {', '.join(missing)}",
                details={"database_type": cls.database_type.value, "missing": missing},
            )
        try:
            port = int(merged.get("port") or cls.default_port)
        except (TypeError, ValueError) as exc:
            raise StoreConnectionError("Invalid port in credentials", cause=exc) from exc

        return URL.create(
            cls.drivername,
            username=str(merged.get("user") or cls.default_user),
            password=str(merged.get("password") or ""),
            host=str(merged["host"]),
            port=port,
            database=str(merged["database"]),
        )

    @classmethod
    def ssl_connect_args(cls, credentials: Mapping[str, Any]) -> Dict[str, Any]:
        return {}

    @classmethod
    def from_credentials(cls, credentials: Mapping[str, Any], settings: Optional[Settings] = None) -> "RelationalAdapter":
        return cls(cls.build_url(credentials), settings, connect_args=cls.ssl_connect_args(credentials))


class PostgresAdapter(RelationalAdapter):
    database_type = DatabaseType.POSTGRESQL
    default_port = 5432
    default_user = "postgres"
    drivername = "postgresql+asyncpg"

    @classmethod
    def ssl_connect_args(cls, credentials: Mapping[str, Any]) -> Dict[str, Any]:
        # asyncpg accepts the libpq sslmode names directly
        return {"ssl": "require"} if _is_truthy(credentials.get("ssl")) else {}


class MySQLAdapter(RelationalAdapter):
    database_type = DatabaseType.MYSQL
    default_port = 3306
    default_user = "root"
    drivername = "mysql+aiomysql"

    @classmethod
    def ssl_connect_args(cls, credentials: Mapping[str, Any]) -> Dict[str, Any]:
        return {"ssl": ssl.create_default_context()} if _is_truthy(credentials.get("ssl")) else {}
