"""TaskStore SQLite 实现

单文档操作各自原子；多记录一致性由 transaction.write_transaction 提供。
所有写操作递增 version，update_task 支持基于 version 的 compare-and-swap。
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

import aiosqlite

from ..models.enums import TaskStatus
from ..models.task import Task, TaskMilestones

_COLUMNS = (
    "task_id",
    "name",
    "description",
    "price",
    "due_date",
    "date_created",
    "updated_at",
    "status",
    "assigned_to",
    "business_id",
    "solution",
    "review_comments",
    "reviewed_at",
    "reviewed_by",
    "milestones",
    "version",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM tasks"

# 允许部分更新的列（task_id / business_id / date_created / version 不可直接改写）
UPDATABLE_FIELDS = frozenset(_COLUMNS) - {"task_id", "business_id", "date_created", "version"}

# 允许等值查询的字段；is_assigned 为派生字段，转换为 status 条件
QUERYABLE_FIELDS = frozenset({"business_id", "assigned_to", "status", "name", "is_assigned"})


def _to_column(value: Any) -> Any:
    """将模型字段值转换为 SQLite 列值"""
    if isinstance(value, TaskMilestones):
        return value.model_dump_json()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> str:
        """创建任务记录，返回 task_id（不自动提交）"""
        values = [_to_column(getattr(task, column)) for column in _COLUMNS]
        placeholders = ", ".join("?" for _ in _COLUMNS)
        await self._conn.execute(
            f"INSERT INTO tasks ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            values,
        )
        return task.task_id

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(f"{_SELECT} WHERE task_id = ?", (task_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def update_task(
        self,
        task_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> bool:
        """部分更新任务并递增 version（不自动提交）

        Args:
            task_id: 任务 ID
            fields: 需要更新的字段
            expected_version: 期望的当前版本；不匹配时不写入

        Returns:
            True 如果有行被更新；任务不存在或版本不匹配时返回 False

        Raises:
            ValueError: 包含不可更新的字段
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        assignments = [f"{column} = ?" for column in fields]
        assignments.append("version = version + 1")
        params: list[Any] = [_to_column(value) for value in fields.values()]

        sql = f"UPDATE tasks SET {', '.join(assignments)} WHERE task_id = ?"
        params.append(task_id)
        if expected_version is not None:
            sql += " AND version = ?"
            params.append(expected_version)

        cursor = await self._conn.execute(sql, params)
        return cursor.rowcount > 0

    async def delete_task(self, task_id: str, expected_version: int | None = None) -> bool:
        """删除任务（不自动提交）

        Returns:
            True 如果有行被删除；任务不存在或版本不匹配时返回 False
        """
        if expected_version is None:
            cursor = await self._conn.execute("DELETE FROM tasks WHERE task_id = ?", (task_id,))
        else:
            cursor = await self._conn.execute(
                "DELETE FROM tasks WHERE task_id = ? AND version = ?",
                (task_id, expected_version),
            )
        return cursor.rowcount > 0

    async def query_by_field(self, field: str, value: Any) -> list[Task]:
        """单字段等值查询，按 date_created 正序

        Raises:
            ValueError: 字段不支持查询
        """
        if field not in QUERYABLE_FIELDS:
            raise ValueError(f"Field cannot be queried: {field}")

        if field == "is_assigned":
            if not isinstance(value, bool):
                raise ValueError(f"is_assigned expects a bool, got {value!r}")
            operator = "!=" if value else "="
            cursor = await self._conn.execute(
                f"{_SELECT} WHERE status {operator} ? ORDER BY date_created ASC",
                (TaskStatus.PENDING.value,),
            )
        else:
            cursor = await self._conn.execute(
                f"{_SELECT} WHERE {field} = ? ORDER BY date_created ASC",
                (_to_column(value),),
            )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_tasks(self, status: str | None = None) -> list[Task]:
        """查询任务列表，支持按状态筛选，按 date_created 倒序"""
        if status:
            cursor = await self._conn.execute(
                f"{_SELECT} WHERE status = ? ORDER BY date_created DESC",
                (status,),
            )
        else:
            cursor = await self._conn.execute(f"{_SELECT} ORDER BY date_created DESC")
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        milestones_data = json.loads(row[14]) if row[14] else {}
        return Task(
            task_id=row[0],
            name=row[1],
            description=row[2],
            price=row[3],
            due_date=datetime.fromisoformat(row[4]),
            date_created=datetime.fromisoformat(row[5]),
            updated_at=datetime.fromisoformat(row[6]),
            status=row[7],
            assigned_to=row[8],
            business_id=row[9],
            solution=row[10],
            review_comments=row[11],
            reviewed_at=_from_iso(row[12]),
            reviewed_by=row[13],
            milestones=TaskMilestones(**milestones_data),
            version=row[15],
        )
