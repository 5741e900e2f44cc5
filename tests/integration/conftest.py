"""集成测试共享 fixture"""

import os
from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def integration_app(store_group, seed_business, seed_employee, tmp_db_path):
    """集成测试用 FastAPI app"""
    os.environ["TASKMARKET_DB_PATH"] = str(tmp_db_path)
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from taskmarket.core.config import LifecycleConfig
    from taskmarket.gateway.main import create_app

    await seed_business("biz-acme", "uid-acme-owner")
    await seed_employee("uid-emp-1", "emp-1")

    app = create_app()
    app.state.store_group = store_group
    app.state.lifecycle_config = LifecycleConfig(require_authentication=True)

    yield app

    os.environ.pop("TASKMARKET_DB_PATH", None)
    os.environ.pop("LOGFIRE_SEND_TO_LOGFIRE", None)


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac
