"""EventStore SQLite 实现

task_events 是 append-only 审计日志，任务删除后保留。
同一任务的 task_seq 由唯一索引保证严格递增。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.enums import ActorType, EventType
from ..models.event import TaskEvent

_COLUMNS = ("event_id", "task_id", "task_seq", "ts", "type", "actor", "principal_id", "payload")
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM task_events"


class SqliteEventStore:
    """EventStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_event(self, event: TaskEvent) -> None:
        """追加事件（不自动提交）

        task_seq 重复时抛出 aiosqlite.IntegrityError，由 write_transaction 识别为版本冲突。
        """
        placeholders = ", ".join("?" for _ in _COLUMNS)
        await self._conn.execute(
            f"INSERT INTO task_events ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            (
                event.event_id,
                event.task_id,
                event.task_seq,
                event.ts.isoformat(),
                event.type.value,
                event.actor.value,
                event.principal_id,
                json.dumps(event.payload, ensure_ascii=False, default=str),
            ),
        )

    async def get_events_for_task(
        self, task_id: str, event_type: EventType | None = None
    ) -> list[TaskEvent]:
        """按 task_seq 正序返回任务事件，可按事件类型筛选"""
        if event_type is None:
            cursor = await self._conn.execute(
                f"{_SELECT} WHERE task_id = ? ORDER BY task_seq ASC", (task_id,)
            )
        else:
            cursor = await self._conn.execute(
                f"{_SELECT} WHERE task_id = ? AND type = ? ORDER BY task_seq ASC",
                (task_id, EventType(event_type).value),
            )
        return [self._row_to_event(row) for row in await cursor.fetchall()]

    async def get_next_task_seq(self, task_id: str) -> int:
        """下一个 task_seq（MAX+1），需在写事务内调用"""
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(task_seq), 0) + 1 FROM task_events WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return row[0]

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> TaskEvent:
        return TaskEvent(
            event_id=row[0],
            task_id=row[1],
            task_seq=row[2],
            ts=datetime.fromisoformat(row[3]),
            type=EventType(row[4]),
            actor=ActorType(row[5]),
            principal_id=row[6],
            payload=json.loads(row[7]) if row[7] else {},
        )
