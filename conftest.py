"""全局 pytest 配置 -- 临时 SQLite 数据库与 StoreGroup fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest_asyncio


@pytest_asyncio.fixture
async def tmp_db_path(tmp_path: Path) -> Path:
    """提供临时 SQLite 数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest_asyncio.fixture
async def db_conn(tmp_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """提供已初始化的临时 SQLite 数据库连接"""
    from taskmarket.core.store.sqlite_init import init_db

    tmp_db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = await aiosqlite.connect(str(tmp_db_path))
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store_group(tmp_db_path: Path):
    """提供完整的 StoreGroup（共享连接）"""
    from taskmarket.core.store import create_store_group

    group = await create_store_group(str(tmp_db_path))
    yield group
    await group.close()


@pytest_asyncio.fixture
async def seed_business(store_group):
    """写入商家记录的工厂，owner_uid 同时登记为该商家的 principal"""
    from taskmarket.core.models import Business, PrincipalLink

    async def _seed(
        business_id: str,
        owner_uid: str | None = None,
        tasks: list[str] | None = None,
    ) -> None:
        await store_group.business_store.create_business(
            Business(
                business_id=business_id,
                business_name=f"{business_id} ltd",
                owner_uid=owner_uid,
                created_at=datetime.now(UTC),
                tasks=tasks or [],
            )
        )
        if owner_uid:
            await store_group.principal_store.link_principal(
                PrincipalLink(uid=owner_uid, business_id=business_id)
            )
        await store_group.conn.commit()

    return _seed


@pytest_asyncio.fixture
async def seed_employee(store_group):
    """登记员工 principal 的工厂"""
    from taskmarket.core.models import PrincipalLink

    async def _seed(uid: str, employee_id: str) -> None:
        await store_group.principal_store.link_principal(
            PrincipalLink(uid=uid, employee_id=employee_id)
        )
        await store_group.conn.commit()

    return _seed
