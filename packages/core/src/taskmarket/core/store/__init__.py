"""TaskMarket Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

from .business_store import SqliteBusinessStore
from .event_store import SqliteEventStore
from .principal_store import SqlitePrincipalStore
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .transaction import TaskVersionConflictError, apply_task_change, write_transaction


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接

    同时持有写事务锁和按 task_id 划分的锁表，
    使用同一 StoreGroup 的所有服务实例共享这些锁。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.task_store = SqliteTaskStore(conn)
        self.business_store = SqliteBusinessStore(conn)
        self.principal_store = SqlitePrincipalStore(conn)
        self.event_store = SqliteEventStore(conn)
        self.write_lock = asyncio.Lock()
        self._task_locks: dict[str, asyncio.Lock] = {}
        self._task_lock_users: dict[str, int] = {}

    @asynccontextmanager
    async def task_lock(self, task_id: str) -> AsyncIterator[None]:
        """持有 task 级别锁，序列化同一任务的读-校验-写流程

        锁表只保留有持有者或等待者的条目，最后一个使用者退出时移除。
        """
        lock = self._task_locks.get(task_id)
        if lock is None:
            lock = asyncio.Lock()
            self._task_locks[task_id] = lock
        self._task_lock_users[task_id] = self._task_lock_users.get(task_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._task_lock_users[task_id] - 1
            if remaining:
                self._task_lock_users[task_id] = remaining
            else:
                del self._task_lock_users[task_id]
                del self._task_locks[task_id]

    async def close(self) -> None:
        await self.conn.close()


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteBusinessStore",
    "SqlitePrincipalStore",
    "SqliteEventStore",
    "init_db",
    "write_transaction",
    "apply_task_change",
    "TaskVersionConflictError",
]
