import pytest

from src.tenancy.infrastructure.adapters.relational import RelationalAdapter
from src.tenancy.infrastructure.connection.master_database import MasterDatabase
from src.tenancy.infrastructure.models.master_models import MasterBase
from src.tenancy.infrastructure.models.tenant_models import TenantBase


@pytest.fixture
async def master_db(tmp_path, settings):
    master = MasterDatabase(f"sqlite+aiosqlite:///{tmp_path / 'master.db'}", settings)
    engine = await master.get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(MasterBase.metadata.create_all)
    yield master
    await master.close()


@pytest.fixture
async def tenant_adapter(tmp_path, settings):
    adapter = RelationalAdapter(f"sqlite+aiosqlite:///{tmp_path / 'tenant.db'}", settings)
    await adapter.connect()
    async with adapter.engine.begin() as conn:
        await conn.run_sync(TenantBase.metadata.create_all)
    yield adapter
    await adapter.close()
