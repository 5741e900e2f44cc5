"""apps/gateway 测试配置 -- httpx AsyncClient + 手动初始化的 app.state"""

import os
from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient


@pytest_asyncio.fixture
async def app(store_group, seed_business, seed_employee, tmp_db_path):
    """创建测试用 FastAPI app 实例（绕过 lifespan，直接注入 StoreGroup）"""
    os.environ["TASKMARKET_DB_PATH"] = str(tmp_db_path)
    os.environ["LOGFIRE_SEND_TO_LOGFIRE"] = "false"

    from taskmarket.core.config import LifecycleConfig
    from taskmarket.gateway.main import create_app

    await seed_business("biz-acme", "uid-acme-owner")
    await seed_business("biz-globex", "uid-globex-owner")
    await seed_employee("uid-emp", "emp-1")

    application = create_app()
    application.state.store_group = store_group
    application.state.lifecycle_config = LifecycleConfig()
    yield application

    for key in ["TASKMARKET_DB_PATH", "LOGFIRE_SEND_TO_LOGFIRE"]:
        os.environ.pop(key, None)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
