"""Business / Principal Domain Model

Business.tasks 是反规范化的任务 ID 缓存，权威归属关系是 Task.business_id。
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Business(BaseModel):
    """商家记录（由外部资料流程创建）"""

    business_id: str = Field(description="商家 ID")
    business_name: str = Field(default="", description="商家名称")
    owner_uid: str | None = Field(default=None, description="所有者 principal ID")
    created_at: datetime = Field(description="创建时间")
    tasks: list[str] = Field(default_factory=list, description="已发布任务 ID（有序）")


class PrincipalLink(BaseModel):
    """principal 与商家/员工身份的关联"""

    uid: str = Field(description="已认证的 principal ID")
    business_id: str | None = Field(default=None, description="关联的商家 ID")
    employee_id: str | None = Field(default=None, description="关联的员工 ID")
