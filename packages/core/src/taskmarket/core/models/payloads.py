"""Event Payload 子类型

所有审计事件的结构化 payload 定义。
"""

from pydantic import BaseModel, Field

from .enums import TaskStatus


class TaskCreatedPayload(BaseModel):
    """TASK_CREATED 事件 payload"""

    name: str
    business_id: str
    price: float
    status: TaskStatus = TaskStatus.PENDING


class StateTransitionPayload(BaseModel):
    """STATE_TRANSITION 事件 payload"""

    from_status: TaskStatus
    to_status: TaskStatus
    action: str = Field(default="update_status", description="触发流转的操作")
    reason: str = Field(default="")
    assigned_to: str | None = Field(default=None, description="流转后的承接员工")


class TaskUpdatedPayload(BaseModel):
    """TASK_UPDATED 事件 payload"""

    changed_fields: list[str] = Field(description="被修改的字段")


class TaskDeletedPayload(BaseModel):
    """TASK_DELETED 事件 payload"""

    business_id: str
    unlinked: bool = Field(description="是否已从商家任务列表移除")
    last_status: TaskStatus
