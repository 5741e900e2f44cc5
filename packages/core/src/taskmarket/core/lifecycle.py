"""TaskLifecycleService -- 任务生命周期操作

每个写操作的流程：
1. 获取 task 级别锁（同一 StoreGroup 上的所有服务实例共享）
2. 读取任务并通过状态机/所有权校验
3. 在单个事务内以 version 做 compare-and-swap 写入任务并追加审计事件
4. 版本冲突时重新读取并重新校验，超过重试上限抛出 ConcurrentModificationError

流转合法性只通过 models.enums 中的 validate_transition / validate_operation 判断。
"""

import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog
from pydantic import ValidationError
from ulid import ULID

from .config import LifecycleConfig
from .consistency import BusinessTaskConsistency
from .exceptions import (
    ConcurrentModificationError,
    EmptySolutionError,
    InvalidStateError,
    InvalidTransitionError,
    TaskNotFoundError,
    TaskValidationError,
)
from .models import (
    OPERATION_TRANSITIONS,
    REVIEW_ACTIONS,
    ActorType,
    EventType,
    LifecycleAction,
    ReviewAction,
    StateTransitionPayload,
    Task,
    TaskCreatedPayload,
    TaskDeletedPayload,
    TaskEvent,
    TaskStatus,
    TaskUpdatedPayload,
    operation_target,
    validate_operation,
    validate_transition,
)
from .ownership import OwnershipVerifier
from .store import StoreGroup
from .store.transaction import TaskVersionConflictError, apply_task_change

log = structlog.get_logger()

# 审核动作 -> 对应的里程碑时间戳字段
_REVIEW_MILESTONES: dict[ReviewAction, str] = {
    ReviewAction.APPROVE: "approved_at",
    ReviewAction.REJECT: "rejected_at",
    ReviewAction.REQUEST_CHANGES: "changes_requested_at",
}


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class _TaskChange:
    """一次任务写入：待更新字段 + 审计事件内容"""

    fields: dict[str, Any]
    event_type: EventType
    payload: dict[str, Any] = field(default_factory=dict)


def _require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise TaskValidationError(f"{field_name} must be a non-empty string", [field_name])
    return value.strip()


def _require_price(price: Any) -> float:
    if isinstance(price, bool) or not isinstance(price, int | float):
        raise TaskValidationError("price must be a number", ["price"])
    if not math.isfinite(price) or price <= 0:
        raise TaskValidationError("price must be greater than 0", ["price"])
    return float(price)


def _require_datetime(value: Any, field_name: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return datetime.fromisoformat(value.strip())
        except ValueError:
            pass
    raise TaskValidationError(f"{field_name} must be an ISO 8601 datetime", [field_name])


class TaskLifecycleService:
    """任务生命周期业务服务"""

    def __init__(self, stores: StoreGroup, config: LifecycleConfig | None = None) -> None:
        self._stores = stores
        self._config = config or LifecycleConfig()
        self.ownership = OwnershipVerifier(
            stores.principal_store,
            require_authentication=self._config.require_authentication,
        )
        self.consistency = BusinessTaskConsistency(stores)

    # ---- 查询 ----

    async def get_task(self, task_id: str) -> Task:
        """查询任务详情

        Raises:
            TaskNotFoundError: 任务不存在
        """
        task = await self._stores.task_store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    async def list_tasks(self, status: str | None = None) -> list[Task]:
        """查询任务列表"""
        if status is not None:
            try:
                status = TaskStatus(status).value
            except ValueError as e:
                raise TaskValidationError(f"Unknown status: {status}", ["status"]) from e
        return await self._stores.task_store.list_tasks(status)

    async def list_tasks_for_business(self, business_id: str) -> list[Task]:
        """查询商家发布的任务"""
        return await self._stores.task_store.query_by_field("business_id", business_id)

    async def list_tasks_for_employee(self, employee_id: str) -> list[Task]:
        """查询指派给员工的任务"""
        return await self._stores.task_store.query_by_field("assigned_to", employee_id)

    async def list_unassigned_tasks(self) -> list[Task]:
        """查询尚未指派的任务"""
        return await self._stores.task_store.query_by_field("is_assigned", False)

    async def get_task_history(
        self, task_id: str, event_type: str | None = None
    ) -> list[TaskEvent]:
        """查询任务审计事件，任务删除后仍可查询

        Raises:
            TaskValidationError: 未知事件类型
            TaskNotFoundError: 任务从未存在
        """
        wanted = None
        if event_type is not None:
            try:
                wanted = EventType(event_type)
            except ValueError as e:
                raise TaskValidationError(f"Unknown event type: {event_type}", ["type"]) from e

        events = await self._stores.event_store.get_events_for_task(task_id, wanted)
        if not events and not await self._stores.event_store.get_events_for_task(task_id):
            # 确认任务是否存在（例如外部直接写入的任务没有事件）
            await self.get_task(task_id)
        return events

    # ---- 创建 / 删除（跨实体一致性） ----

    async def create_task(
        self,
        *,
        name: Any,
        price: Any,
        description: Any,
        due_date: Any,
        business_id: Any,
        principal_id: str | None = None,
    ) -> Task:
        """创建任务并追加到商家任务列表

        Raises:
            TaskValidationError: 字段缺失或非法
            BusinessNotFoundError: 商家不存在（任务不会落盘）
        """
        missing = [
            name_
            for name_, value in (
                ("name", name),
                ("price", price),
                ("description", description),
                ("due_date", due_date),
                ("business_id", business_id),
            )
            if value is None or (isinstance(value, str) and not value.strip())
        ]
        if missing:
            raise TaskValidationError("Missing required fields", missing)

        now = _now()
        task_id = str(ULID())
        try:
            task = Task(
                task_id=task_id,
                name=_require_text(name, "name"),
                description=_require_text(description, "description"),
                price=_require_price(price),
                due_date=_require_datetime(due_date, "due_date"),
                date_created=now,
                updated_at=now,
                status=TaskStatus.PENDING,
                assigned_to=None,
                business_id=_require_text(business_id, "business_id"),
            )
        except ValidationError as e:
            raise TaskValidationError(str(e)) from e

        actor = await self._actor_for(principal_id)
        event = self._build_event(
            task_id,
            1,
            EventType.TASK_CREATED,
            actor,
            principal_id,
            TaskCreatedPayload(
                name=task.name,
                business_id=task.business_id,
                price=task.price,
            ).model_dump(),
        )
        await self.consistency.create_linked(task, event)

        log.info(
            "task_created",
            task_id=task_id,
            business_id=task.business_id,
            price=task.price,
        )
        return task

    async def delete_task(self, task_id: str, principal_id: str | None = None) -> Task:
        """删除任务并从商家任务列表移除

        Returns:
            删除前的任务快照

        Raises:
            TaskNotFoundError: 任务不存在
            UnauthenticatedError / ForbiddenError: 所有权检查失败
        """
        actor = await self._actor_for(principal_id)
        async with self._stores.task_lock(task_id):
            for attempt in range(1, self._config.max_conflict_retries + 1):
                task = await self.get_task(task_id)
                await self.ownership.ensure_business_action(principal_id, task, "delete")

                def build_event(seq: int, unlinked: bool, snapshot: Task = task) -> TaskEvent:
                    return self._build_event(
                        task_id,
                        seq,
                        EventType.TASK_DELETED,
                        actor,
                        principal_id,
                        TaskDeletedPayload(
                            business_id=snapshot.business_id,
                            unlinked=unlinked,
                            last_status=snapshot.status,
                        ).model_dump(),
                    )

                try:
                    unlinked = await self.consistency.delete_unlinked(task, build_event)
                except TaskVersionConflictError:
                    log.warning("task_version_conflict_retry", task_id=task_id, attempt=attempt)
                    continue
                break
            else:
                raise ConcurrentModificationError(task_id, self._config.max_conflict_retries)

        log.info(
            "task_deleted",
            task_id=task_id,
            business_id=task.business_id,
            unlinked=unlinked,
        )
        return task

    # ---- 状态流转 ----

    async def assign_task(
        self, task_id: str, employee_id: str, principal_id: str | None = None
    ) -> Task:
        """指派任务给员工（PENDING / REJECTED -> ASSIGNED）

        Raises:
            TaskValidationError: employee_id 为空
            InvalidStateError: 当前状态不允许指派
        """
        employee_id = _require_text(employee_id, "employee_id")

        async def plan(task: Task) -> _TaskChange:
            target = self._check_operation(task, LifecycleAction.ASSIGN)
            now = _now()
            return _TaskChange(
                fields={
                    "status": target,
                    "assigned_to": employee_id,
                    # 重新指派时清空上一位员工的方案
                    "solution": "",
                    "milestones": task.milestones.model_copy(update={"assigned_at": now}),
                    "updated_at": now,
                },
                event_type=EventType.STATE_TRANSITION,
                payload=StateTransitionPayload(
                    from_status=task.status,
                    to_status=target,
                    action=LifecycleAction.ASSIGN.value,
                    assigned_to=employee_id,
                ).model_dump(),
            )

        task = await self._mutate(task_id, principal_id, plan)
        log.info("task_assigned", task_id=task_id, employee_id=employee_id)
        return task

    async def unassign_task(self, task_id: str, principal_id: str | None = None) -> Task:
        """取消指派（ASSIGNED / IN_PROGRESS -> PENDING）

        Raises:
            InvalidStateError: 当前状态不允许取消指派
        """

        async def plan(task: Task) -> _TaskChange:
            target = self._check_operation(task, LifecycleAction.UNASSIGN)
            now = _now()
            return _TaskChange(
                fields={
                    "status": target,
                    "assigned_to": None,
                    "milestones": task.milestones.model_copy(update={"unassigned_at": now}),
                    "updated_at": now,
                },
                event_type=EventType.STATE_TRANSITION,
                payload=StateTransitionPayload(
                    from_status=task.status,
                    to_status=target,
                    action=LifecycleAction.UNASSIGN.value,
                ).model_dump(),
            )

        task = await self._mutate(task_id, principal_id, plan)
        log.info("task_unassigned", task_id=task_id)
        return task

    async def update_status(
        self,
        task_id: str,
        new_status: str,
        comments: str | None = None,
        principal_id: str | None = None,
    ) -> Task:
        """通用状态流转，按 VALID_TRANSITIONS 校验

        流转到 PENDING 时清空承接员工；流转到 ASSIGNED 要求已有承接员工。

        Raises:
            TaskValidationError: 未知状态
            InvalidTransitionError: 流转不在流转表内
            InvalidStateError: 流转到 ASSIGNED 但没有承接员工
        """
        try:
            target = TaskStatus(new_status)
        except ValueError as e:
            raise TaskValidationError(f"Unknown status: {new_status}", ["status"]) from e

        async def plan(task: Task) -> _TaskChange:
            if not validate_transition(task.status, target):
                raise InvalidTransitionError(task.status.value, target.value)
            if target == TaskStatus.ASSIGNED and not task.assigned_to:
                raise InvalidStateError(
                    "update_status",
                    task.status.value,
                    message="Task has no assignee; use assign to move it to ASSIGNED",
                )

            now = _now()
            milestone_updates: dict[str, datetime] = {"status_updated_at": now}
            if task.status == TaskStatus.ASSIGNED and target == TaskStatus.IN_PROGRESS:
                milestone_updates["started_at"] = now

            fields: dict[str, Any] = {
                "status": target,
                "milestones": task.milestones.model_copy(update=milestone_updates),
                "updated_at": now,
            }
            if target == TaskStatus.PENDING:
                fields["assigned_to"] = None

            return _TaskChange(
                fields=fields,
                event_type=EventType.STATE_TRANSITION,
                payload=StateTransitionPayload(
                    from_status=task.status,
                    to_status=target,
                    reason=comments or "",
                    assigned_to=fields.get("assigned_to", task.assigned_to),
                ).model_dump(),
            )

        task = await self._mutate(task_id, principal_id, plan)
        log.info("task_status_updated", task_id=task_id, status=task.status.value)
        return task

    async def submit_solution(
        self, task_id: str, solution: str, principal_id: str | None = None
    ) -> Task:
        """提交方案（ASSIGNED / IN_PROGRESS -> SUBMITTED）

        Raises:
            EmptySolutionError: 方案为空（在读取任务前检查）
            InvalidStateError: 当前状态不允许提交
        """
        if not isinstance(solution, str) or not solution.strip():
            raise EmptySolutionError()

        async def plan(task: Task) -> _TaskChange:
            target = self._check_operation(task, LifecycleAction.SUBMIT)
            now = _now()
            return _TaskChange(
                fields={
                    "status": target,
                    "solution": solution,
                    "milestones": task.milestones.model_copy(update={"submitted_at": now}),
                    "updated_at": now,
                },
                event_type=EventType.STATE_TRANSITION,
                payload=StateTransitionPayload(
                    from_status=task.status,
                    to_status=target,
                    action=LifecycleAction.SUBMIT.value,
                    assigned_to=task.assigned_to,
                ).model_dump(),
            )

        task = await self._mutate(task_id, principal_id, plan)
        log.info("solution_submitted", task_id=task_id, solution_length=len(solution))
        return task

    async def review_task(
        self,
        task_id: str,
        principal_id: str | None,
        action: str,
        comments: str | None = None,
    ) -> Task:
        """商家审核已提交的任务

        approve -> APPROVED；reject -> REJECTED；request_changes -> IN_PROGRESS。

        Raises:
            UnauthenticatedError: principal 不可解析为商家
            TaskValidationError: 未知审核动作
            ForbiddenError: 审核商家不拥有该任务
            InvalidStateError: 任务不在 SUBMITTED 状态
        """
        await self.ownership.require_business_principal(principal_id)
        try:
            review_action = ReviewAction(action)
        except ValueError as e:
            raise TaskValidationError(f"Unknown review action: {action}", ["action"]) from e
        lifecycle_action = REVIEW_ACTIONS[review_action]

        async def plan(task: Task) -> _TaskChange:
            await self.ownership.ensure_business_action(principal_id, task, "review")
            target = self._check_operation(task, lifecycle_action)
            now = _now()
            return _TaskChange(
                fields={
                    "status": target,
                    "review_comments": comments,
                    "reviewed_at": now,
                    "reviewed_by": principal_id,
                    "milestones": task.milestones.model_copy(
                        update={_REVIEW_MILESTONES[review_action]: now}
                    ),
                    "updated_at": now,
                },
                event_type=EventType.STATE_TRANSITION,
                payload=StateTransitionPayload(
                    from_status=task.status,
                    to_status=target,
                    action=lifecycle_action.value,
                    reason=comments or "",
                    assigned_to=task.assigned_to,
                ).model_dump(),
            )

        task = await self._mutate(task_id, principal_id, plan)
        log.info(
            "task_reviewed",
            task_id=task_id,
            action=review_action.value,
            reviewed_by=principal_id,
            status=task.status.value,
        )
        return task

    # ---- 字段更新 ----

    async def update_task(
        self,
        task_id: str,
        principal_id: str | None = None,
        *,
        name: str | None = None,
        description: str | None = None,
        price: float | None = None,
        due_date: datetime | str | None = None,
    ) -> Task:
        """部分更新任务描述字段，不改变状态

        Raises:
            TaskValidationError: 未提供任何字段或字段非法
            UnauthenticatedError / ForbiddenError: 所有权检查失败
        """
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = _require_text(name, "name")
        if description is not None:
            changes["description"] = _require_text(description, "description")
        if price is not None:
            changes["price"] = _require_price(price)
        if due_date is not None:
            changes["due_date"] = _require_datetime(due_date, "due_date")
        if not changes:
            raise TaskValidationError(
                "No fields to update", ["name", "description", "price", "due_date"]
            )

        async def plan(task: Task) -> _TaskChange:
            await self.ownership.ensure_business_action(principal_id, task, "update")
            return _TaskChange(
                fields={**changes, "updated_at": _now()},
                event_type=EventType.TASK_UPDATED,
                payload=TaskUpdatedPayload(changed_fields=sorted(changes)).model_dump(),
            )

        task = await self._mutate(task_id, principal_id, plan)
        log.info("task_updated", task_id=task_id, changed_fields=sorted(changes))
        return task

    # ---- 内部 ----

    @staticmethod
    def _check_operation(task: Task, action: LifecycleAction) -> TaskStatus:
        """按专用操作流转表校验，返回目标状态"""
        if not validate_operation(action, task.status):
            sources, _ = OPERATION_TRANSITIONS[action]
            raise InvalidStateError(
                action.value,
                task.status.value,
                {s.value for s in sources},
            )
        return operation_target(action)

    async def _mutate(
        self,
        task_id: str,
        principal_id: str | None,
        plan: Callable[[Task], Awaitable[_TaskChange]],
    ) -> Task:
        """读取-校验-CAS 写入，版本冲突时重新读取并重新校验"""
        actor = await self._actor_for(principal_id)
        async with self._stores.task_lock(task_id):
            for attempt in range(1, self._config.max_conflict_retries + 1):
                task = await self.get_task(task_id)
                change = await plan(task)
                # 写入前确认状态与指派字段仍满足不变量
                Task.model_validate({**task.model_dump(), **change.fields})

                def build_event(seq: int, change: _TaskChange = change) -> TaskEvent:
                    return self._build_event(
                        task_id, seq, change.event_type, actor, principal_id, change.payload
                    )

                try:
                    await apply_task_change(
                        self._stores, task_id, change.fields, task.version, build_event
                    )
                except TaskVersionConflictError:
                    log.warning("task_version_conflict_retry", task_id=task_id, attempt=attempt)
                    continue
                updated = await self.get_task(task_id)
                break
            else:
                raise ConcurrentModificationError(task_id, self._config.max_conflict_retries)
        return updated

    async def _actor_for(self, principal_id: str | None) -> ActorType:
        link = await self.ownership.resolve_principal(principal_id)
        if link is None:
            return ActorType.ANONYMOUS
        if link.business_id:
            return ActorType.BUSINESS
        if link.employee_id:
            return ActorType.EMPLOYEE
        return ActorType.ANONYMOUS

    @staticmethod
    def _build_event(
        task_id: str,
        seq: int,
        event_type: EventType,
        actor: ActorType,
        principal_id: str | None,
        payload: dict[str, Any],
    ) -> TaskEvent:
        return TaskEvent(
            event_id=str(ULID()),
            task_id=task_id,
            task_seq=seq,
            ts=_now(),
            type=event_type,
            actor=actor,
            principal_id=principal_id,
            payload=payload,
        )
