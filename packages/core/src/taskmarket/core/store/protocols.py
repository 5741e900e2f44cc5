"""Store Protocol 接口定义

定义 TaskStore、BusinessStore、PrincipalStore、EventStore 的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
写方法均不自动提交，由 transaction.write_transaction 管理事务。
"""

from typing import Any, Protocol

from ..models.business import Business, PrincipalLink
from ..models.enums import EventType
from ..models.event import TaskEvent
from ..models.task import Task


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task) -> str:
        """创建任务记录，返回 task_id"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务，不存在返回 None"""
        ...

    async def update_task(
        self,
        task_id: str,
        fields: dict[str, Any],
        expected_version: int | None = None,
    ) -> bool:
        """部分更新任务，不存在或版本不匹配返回 False"""
        ...

    async def delete_task(self, task_id: str, expected_version: int | None = None) -> bool:
        """删除任务，不存在或版本不匹配返回 False"""
        ...

    async def query_by_field(self, field: str, value: Any) -> list[Task]:
        """单字段等值查询"""
        ...

    async def list_tasks(self, status: str | None = None) -> list[Task]:
        """查询任务列表，支持按状态筛选"""
        ...


class BusinessStore(Protocol):
    """Business 存储接口"""

    async def create_business(self, business: Business) -> None:
        """创建商家记录"""
        ...

    async def get_business(self, business_id: str) -> Business | None:
        """根据 business_id 查询商家"""
        ...

    async def list_businesses(self) -> list[Business]:
        """查询全部商家"""
        ...

    async def append_task_id(self, business_id: str, task_id: str) -> bool:
        """追加任务 ID，商家不存在返回 False"""
        ...

    async def remove_task_id(self, business_id: str, task_id: str) -> bool:
        """移除任务 ID，商家不存在返回 False"""
        ...

    async def replace_task_ids(self, business_id: str, task_ids: list[str]) -> bool:
        """整体替换任务 ID 列表"""
        ...


class PrincipalStore(Protocol):
    """Principal 关联存储接口"""

    async def link_principal(self, link: PrincipalLink) -> None:
        """写入或合并 principal 关联"""
        ...

    async def get_principal(self, uid: str) -> PrincipalLink | None:
        """查询 principal 关联"""
        ...


class EventStore(Protocol):
    """审计事件存储接口

    事件表 append-only：只允许插入，不允许更新或删除。
    """

    async def append_event(self, event: TaskEvent) -> None:
        """追加事件（append-only）"""
        ...

    async def get_events_for_task(
        self, task_id: str, event_type: EventType | None = None
    ) -> list[TaskEvent]:
        """查询指定任务的事件，可按类型筛选"""
        ...

    async def get_next_task_seq(self, task_id: str) -> int:
        """获取指定任务的下一个 task_seq（MAX+1）"""
        ...
