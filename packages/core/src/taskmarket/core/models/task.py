"""Task Domain Model

status 是任务所处流程位置的唯一事实来源。
is_assigned 由 status 派生，不落库，避免与 status 不一致。
"""

from datetime import datetime

from pydantic import BaseModel, Field, computed_field, model_validator

from .enums import TaskStatus


class TaskMilestones(BaseModel):
    """生命周期时间戳"""

    assigned_at: datetime | None = Field(default=None, description="最近一次指派时间")
    unassigned_at: datetime | None = Field(default=None, description="最近一次取消指派时间")
    started_at: datetime | None = Field(default=None, description="开始执行时间")
    submitted_at: datetime | None = Field(default=None, description="提交方案时间")
    approved_at: datetime | None = Field(default=None, description="审核通过时间")
    rejected_at: datetime | None = Field(default=None, description="审核驳回时间")
    changes_requested_at: datetime | None = Field(default=None, description="要求修改时间")
    status_updated_at: datetime | None = Field(default=None, description="通用状态更新时间")


class Task(BaseModel):
    """Task 数据模型

    不变量：status == PENDING 当且仅当 assigned_to 为空。
    """

    task_id: str = Field(description="唯一标识，ULID 格式")
    name: str = Field(description="任务名称")
    description: str = Field(description="任务描述")
    price: float = Field(ge=0, description="报酬")
    due_date: datetime = Field(description="截止时间")
    date_created: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")
    assigned_to: str | None = Field(default=None, description="承接员工 ID")
    business_id: str = Field(description="所属商家 ID，创建后不可变")
    solution: str = Field(default="", description="提交的方案")
    review_comments: str | None = Field(default=None, description="审核意见")
    reviewed_at: datetime | None = Field(default=None, description="审核时间")
    reviewed_by: str | None = Field(default=None, description="审核人 principal ID")
    milestones: TaskMilestones = Field(
        default_factory=TaskMilestones, description="生命周期时间戳"
    )
    version: int = Field(default=0, ge=0, description="乐观并发版本号")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_assigned(self) -> bool:
        """由 status 派生：非 PENDING 即视为已指派"""
        return self.status != TaskStatus.PENDING

    @model_validator(mode="after")
    def _check_assignment(self) -> "Task":
        if self.status == TaskStatus.PENDING and self.assigned_to is not None:
            raise ValueError("PENDING task must not have an assignee")
        if self.status != TaskStatus.PENDING and not self.assigned_to:
            raise ValueError(f"{self.status} task must have an assignee")
        return self
