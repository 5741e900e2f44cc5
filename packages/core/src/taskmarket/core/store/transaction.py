"""多记录原子事务封装

在同一 SQLite 事务内原子提交任务写入、商家任务列表更新和审计事件，
失败时整体回滚。共享连接上的事务由 StoreGroup.write_lock 串行化。
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import aiosqlite
import structlog

from ..exceptions import StoreFailureError, TaskMarketError
from ..models.event import TaskEvent

if TYPE_CHECKING:
    from . import StoreGroup

log = structlog.get_logger()


class TaskVersionConflictError(Exception):
    """任务版本不匹配（并发写入或任务已被删除），由调用方重新读取后重试"""

    def __init__(self, task_id: str | None, operation: str | None = None) -> None:
        target = f"task {task_id}" if task_id else "unknown task"
        suffix = f" during {operation}" if operation else ""
        super().__init__(f"Version conflict on {target}{suffix}")
        self.task_id = task_id
        self.operation = operation


def is_task_seq_conflict(error: Exception) -> bool:
    if not isinstance(error, aiosqlite.IntegrityError):
        return False
    text = str(error)
    return "idx_task_events_task_seq" in text or "task_events.task_id, task_events.task_seq" in text


@asynccontextmanager
async def write_transaction(
    conn: aiosqlite.Connection,
    write_lock: asyncio.Lock,
    operation: str,
    task_id: str | None = None,
) -> AsyncIterator[aiosqlite.Connection]:
    """写事务上下文：成功提交，任何异常回滚

    存储层异常转换为 StoreFailureError（原始异常保留在 __cause__），
    task_seq 唯一约束冲突转换为 TaskVersionConflictError。

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        write_lock: 串行化写事务的锁
        operation: 操作名，用于日志
        task_id: 事务写入的任务 ID，用于冲突异常
    """
    async with write_lock:
        try:
            yield conn
            await conn.commit()
        except (TaskMarketError, TaskVersionConflictError):
            await conn.rollback()
            raise
        except aiosqlite.Error as e:
            await conn.rollback()
            if isinstance(e, aiosqlite.IntegrityError) and is_task_seq_conflict(e):
                raise TaskVersionConflictError(task_id, operation) from e
            log.error(
                "store_transaction_failed",
                operation=operation,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise StoreFailureError(operation) from e
        except BaseException:
            await conn.rollback()
            raise


async def apply_task_change(
    stores: "StoreGroup",
    task_id: str,
    fields: dict[str, Any],
    expected_version: int,
    event_builder: Callable[[int], TaskEvent],
) -> TaskEvent:
    """在同一事务内 CAS 更新任务并追加审计事件

    Args:
        stores: StoreGroup 实例
        task_id: 任务 ID
        fields: 需要更新的字段
        expected_version: 读取时的版本号
        event_builder: 根据 task_seq 构建事件

    Returns:
        已写入的事件

    Raises:
        TaskVersionConflictError: 版本不匹配或任务已不存在
    """
    async with write_transaction(
        stores.conn, stores.write_lock, "update_task", task_id
    ):
        updated = await stores.task_store.update_task(task_id, fields, expected_version)
        if not updated:
            raise TaskVersionConflictError(task_id)
        seq = await stores.event_store.get_next_task_seq(task_id)
        event = event_builder(seq)
        await stores.event_store.append_event(event)
    return event
