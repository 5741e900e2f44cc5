"""BusinessStore SQLite 实现

tasks 列保存有序的任务 ID JSON 数组；追加与移除均为单条 UPDATE，
不在 Python 侧做 read-modify-write。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.business import Business

_SELECT = "SELECT business_id, business_name, owner_uid, created_at, tasks FROM businesses"


class SqliteBusinessStore:
    """BusinessStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_business(self, business: Business) -> None:
        """创建商家记录（由外部资料流程调用，不自动提交）"""
        await self._conn.execute(
            """
            INSERT INTO businesses (business_id, business_name, owner_uid, created_at, tasks)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                business.business_id,
                business.business_name,
                business.owner_uid,
                business.created_at.isoformat(),
                json.dumps(business.tasks),
            ),
        )

    async def get_business(self, business_id: str) -> Business | None:
        """根据 business_id 查询商家"""
        cursor = await self._conn.execute(
            f"{_SELECT} WHERE business_id = ?",
            (business_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_business(row)

    async def list_businesses(self) -> list[Business]:
        """查询全部商家，按 created_at 正序"""
        cursor = await self._conn.execute(f"{_SELECT} ORDER BY created_at ASC")
        rows = await cursor.fetchall()
        return [self._row_to_business(row) for row in rows]

    async def append_task_id(self, business_id: str, task_id: str) -> bool:
        """追加任务 ID 到商家任务列表末尾

        Returns:
            False 如果商家不存在
        """
        cursor = await self._conn.execute(
            "UPDATE businesses SET tasks = json_insert(tasks, '$[#]', ?) WHERE business_id = ?",
            (task_id, business_id),
        )
        return cursor.rowcount > 0

    async def remove_task_id(self, business_id: str, task_id: str) -> bool:
        """从商家任务列表移除任务 ID（保持其余 ID 顺序）

        Returns:
            False 如果商家不存在
        """
        cursor = await self._conn.execute(
            """
            UPDATE businesses
            SET tasks = (
                SELECT json_group_array(value)
                FROM json_each(businesses.tasks)
                WHERE value != ?
            )
            WHERE business_id = ?
            """,
            (task_id, business_id),
        )
        return cursor.rowcount > 0

    async def replace_task_ids(self, business_id: str, task_ids: list[str]) -> bool:
        """整体替换商家任务列表（仅供修复流程使用）"""
        cursor = await self._conn.execute(
            "UPDATE businesses SET tasks = ? WHERE business_id = ?",
            (json.dumps(task_ids), business_id),
        )
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_business(row: aiosqlite.Row) -> Business:
        """将数据库行转换为 Business 模型"""
        return Business(
            business_id=row[0],
            business_name=row[1],
            owner_uid=row[2],
            created_at=datetime.fromisoformat(row[3]),
            tasks=json.loads(row[4]) if row[4] else [],
        )
