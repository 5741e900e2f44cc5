"""Cross-Entity Consistency Manager -- 商家任务列表与任务归属的一致性

Business.tasks 是反规范化缓存，Task.business_id 才是权威归属。
创建/删除在同一 SQLite 事务内同时写任务、商家列表和审计事件，
商家不存在时整体回滚（即补偿删除，由事务保证）。
audit / reconcile 用于发现并修复历史遗留或外部写入造成的偏差。
"""

from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

from .exceptions import BusinessNotFoundError
from .models.business import Business
from .models.event import TaskEvent
from .models.task import Task
from .store.transaction import TaskVersionConflictError, write_transaction

if TYPE_CHECKING:
    from .store import StoreGroup

log = structlog.get_logger()


class IssueKind(StrEnum):
    """一致性问题类型"""

    DANGLING = "dangling"  # 列表中的 ID 对应任务不存在或属于其他商家
    DUPLICATE = "duplicate"  # 列表中重复出现的 ID
    MISSING = "missing"  # 任务属于该商家但不在列表中
    ORPHANED = "orphaned"  # 任务所属商家不存在


class ConsistencyIssue(BaseModel):
    """单条一致性问题"""

    kind: IssueKind
    business_id: str
    task_id: str


class ReconcileReport(BaseModel):
    """修复流程报告"""

    dry_run: bool = False
    businesses_checked: int = 0
    businesses_repaired: list[str] = Field(default_factory=list)
    issues: list[ConsistencyIssue] = Field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.issues


def plan_business_repair(
    business: Business, tasks: list[Task]
) -> tuple[list[str], list[ConsistencyIssue]]:
    """计算商家任务列表的修复结果

    保留现有合法 ID 的顺序，去掉悬空/重复 ID，
    按 date_created 追加缺失的 ID。

    Returns:
        (修复后的列表, 发现的问题)
    """
    owned = sorted(
        (t for t in tasks if t.business_id == business.business_id),
        key=lambda t: (t.date_created, t.task_id),
    )
    owned_ids = {t.task_id for t in owned}

    issues: list[ConsistencyIssue] = []
    kept: list[str] = []
    seen: set[str] = set()
    for task_id in business.tasks:
        if task_id in seen:
            issues.append(
                ConsistencyIssue(
                    kind=IssueKind.DUPLICATE, business_id=business.business_id, task_id=task_id
                )
            )
            continue
        seen.add(task_id)
        if task_id not in owned_ids:
            issues.append(
                ConsistencyIssue(
                    kind=IssueKind.DANGLING, business_id=business.business_id, task_id=task_id
                )
            )
            continue
        kept.append(task_id)

    for task in owned:
        if task.task_id not in seen:
            issues.append(
                ConsistencyIssue(
                    kind=IssueKind.MISSING, business_id=business.business_id, task_id=task.task_id
                )
            )
            kept.append(task.task_id)

    return kept, issues


def find_orphaned_tasks(businesses: list[Business], tasks: list[Task]) -> list[ConsistencyIssue]:
    """找出所属商家不存在的任务"""
    business_ids = {b.business_id for b in businesses}
    return [
        ConsistencyIssue(kind=IssueKind.ORPHANED, business_id=t.business_id, task_id=t.task_id)
        for t in tasks
        if t.business_id not in business_ids
    ]


class BusinessTaskConsistency:
    """任务创建/删除时维护商家任务列表，并提供审计与修复"""

    def __init__(self, stores: "StoreGroup") -> None:
        self._stores = stores

    async def create_linked(self, task: Task, event: TaskEvent) -> None:
        """单事务写入任务 + 追加商家任务 ID + TASK_CREATED 事件

        Raises:
            BusinessNotFoundError: 商家不存在，事务回滚，任务不会落盘
        """
        stores = self._stores
        async with write_transaction(
            stores.conn, stores.write_lock, "create_task", task.task_id
        ):
            await stores.task_store.create_task(task)
            linked = await stores.business_store.append_task_id(task.business_id, task.task_id)
            if not linked:
                log.warning(
                    "task_create_rolled_back",
                    task_id=task.task_id,
                    business_id=task.business_id,
                )
                raise BusinessNotFoundError(task.business_id)
            await stores.event_store.append_event(event)

    async def delete_unlinked(
        self,
        task: Task,
        event_builder: Callable[[int, bool], TaskEvent],
    ) -> bool:
        """单事务移除商家任务 ID + 删除任务 + TASK_DELETED 事件

        商家记录缺失时跳过列表移除，仍删除任务。

        Args:
            task: 读取到的任务（version 用于 compare-and-swap）
            event_builder: (task_seq, unlinked) -> 事件

        Returns:
            True 如果商家任务列表被更新

        Raises:
            TaskVersionConflictError: 任务在读取后被修改或删除
        """
        stores = self._stores
        async with write_transaction(
            stores.conn, stores.write_lock, "delete_task", task.task_id
        ):
            unlinked = await stores.business_store.remove_task_id(task.business_id, task.task_id)
            if not unlinked:
                log.warning(
                    "business_missing_on_task_delete",
                    task_id=task.task_id,
                    business_id=task.business_id,
                )
            deleted = await stores.task_store.delete_task(task.task_id, task.version)
            if not deleted:
                raise TaskVersionConflictError(task.task_id)
            seq = await stores.event_store.get_next_task_seq(task.task_id)
            await stores.event_store.append_event(event_builder(seq, unlinked))
        return unlinked

    async def audit(self) -> list[ConsistencyIssue]:
        """只读检查全部商家与任务的一致性"""
        businesses = await self._stores.business_store.list_businesses()
        tasks = await self._stores.task_store.list_tasks()
        issues: list[ConsistencyIssue] = []
        for business in businesses:
            _, business_issues = plan_business_repair(business, tasks)
            issues.extend(business_issues)
        issues.extend(find_orphaned_tasks(businesses, tasks))
        return issues

    async def reconcile(
        self, business_id: str | None = None, dry_run: bool = False
    ) -> ReconcileReport:
        """修复商家任务列表

        孤儿任务只报告不删除。重复执行是幂等的。

        Args:
            business_id: 仅修复指定商家；None 表示全部
            dry_run: 只计算不写入

        Raises:
            BusinessNotFoundError: 指定的商家不存在
        """
        stores = self._stores
        report = ReconcileReport(dry_run=dry_run)
        async with write_transaction(stores.conn, stores.write_lock, "reconcile_business_tasks"):
            businesses = await stores.business_store.list_businesses()
            if business_id is not None:
                businesses = [b for b in businesses if b.business_id == business_id]
                if not businesses:
                    raise BusinessNotFoundError(business_id)
            tasks = await stores.task_store.list_tasks()

            for business in businesses:
                report.businesses_checked += 1
                repaired, issues = plan_business_repair(business, tasks)
                report.issues.extend(issues)
                if repaired == business.tasks:
                    continue
                report.businesses_repaired.append(business.business_id)
                if not dry_run:
                    await stores.business_store.replace_task_ids(business.business_id, repaired)

            if business_id is None:
                report.issues.extend(find_orphaned_tasks(businesses, tasks))

        await log.ainfo(
            "business_tasks_reconciled",
            dry_run=dry_run,
            businesses_checked=report.businesses_checked,
            businesses_repaired=len(report.businesses_repaired),
            issue_count=len(report.issues),
        )
        return report

