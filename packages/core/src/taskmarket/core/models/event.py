"""Task Event Model -- 任务审计事件

每次任务写入在同一事务内追加一条事件；任务删除后事件仍保留，
因此任务经历过的状态序列可以只从事件还原。
"""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .enums import ActorType, EventType, TaskStatus


class TaskEvent(BaseModel):
    """TaskEvent 数据模型"""

    event_id: str = Field(description="唯一标识，ULID 格式")
    task_id: str = Field(description="关联的 Task ID（任务删除后仍保留）")
    task_seq: int = Field(ge=1, description="任务内序号，从 1 开始严格递增")
    ts: datetime = Field(description="写入时间")
    type: EventType = Field(description="事件类型")
    actor: ActorType = Field(description="操作者类型")
    principal_id: str | None = Field(default=None, description="操作者 principal ID")
    payload: dict[str, Any] = Field(default_factory=dict, description="结构化 payload")


def status_sequence(events: Iterable[TaskEvent]) -> list[TaskStatus]:
    """从审计事件还原任务经历的状态序列

    TASK_CREATED 提供初始状态，STATE_TRANSITION 提供每次流转后的状态。
    """
    sequence: list[TaskStatus] = []
    for event in events:
        if event.type == EventType.TASK_CREATED:
            sequence.append(TaskStatus(event.payload.get("status", TaskStatus.PENDING)))
        elif event.type == EventType.STATE_TRANSITION:
            sequence.append(TaskStatus(event.payload["to_status"]))
    return sequence
