"""商家任务列表一致性单元测试

测试内容：
1. 创建失败整体回滚（任务、列表、事件均不落盘）
2. audit 发现悬空/重复/缺失/孤儿问题
3. reconcile 修复并保持幂等，dry_run 不写入
"""

from datetime import UTC, datetime, timedelta

import pytest
from taskmarket.core.consistency import (
    BusinessTaskConsistency,
    IssueKind,
    plan_business_repair,
)
from taskmarket.core.exceptions import BusinessNotFoundError
from taskmarket.core.models import ActorType, Business, EventType, Task, TaskEvent

BUSINESS_ID = "biz-acme"
OTHER_BUSINESS_ID = "biz-globex"
BASE_TIME = datetime(2026, 5, 1, tzinfo=UTC)


def _task(task_id: str, business_id: str = BUSINESS_ID, minutes: int = 0) -> Task:
    created = BASE_TIME + timedelta(minutes=minutes)
    return Task(
        task_id=task_id,
        name=task_id,
        description="d",
        price=5.0,
        due_date=created,
        date_created=created,
        updated_at=created,
        business_id=business_id,
    )


async def _insert_raw(store_group, *tasks: Task) -> None:
    """绕过一致性管理直接写入任务（模拟历史数据）"""
    for task in tasks:
        await store_group.task_store.create_task(task)
    await store_group.conn.commit()


async def _set_list(store_group, business_id: str, task_ids: list[str]) -> None:
    await store_group.business_store.replace_task_ids(business_id, task_ids)
    await store_group.conn.commit()


@pytest.fixture
def consistency(store_group):
    return BusinessTaskConsistency(store_group)


class TestCreateLinked:
    async def test_missing_business_rolls_back_everything(self, consistency, store_group):
        task = _task("t1", business_id="biz-missing")
        event = TaskEvent(
            event_id="ev-1",
            task_id="t1",
            task_seq=1,
            ts=BASE_TIME,
            type=EventType.TASK_CREATED,
            actor=ActorType.SYSTEM,
        )
        with pytest.raises(BusinessNotFoundError):
            await consistency.create_linked(task, event)

        assert await store_group.task_store.get_task("t1") is None
        assert await store_group.event_store.get_events_for_task("t1") == []


class TestPlanBusinessRepair:
    def test_repair_plan(self):
        business = Business(
            business_id=BUSINESS_ID,
            created_at=BASE_TIME,
            tasks=["t2", "ghost", "t2", "x1"],
        )
        tasks = [
            _task("t1", minutes=1),
            _task("t2", minutes=2),
            _task("t3", minutes=3),
            _task("x1", business_id=OTHER_BUSINESS_ID),
        ]
        repaired, issues = plan_business_repair(business, tasks)

        assert repaired == ["t2", "t1", "t3"]
        assert {(i.kind, i.task_id) for i in issues} == {
            (IssueKind.DANGLING, "ghost"),
            (IssueKind.DUPLICATE, "t2"),
            (IssueKind.DANGLING, "x1"),
            (IssueKind.MISSING, "t1"),
            (IssueKind.MISSING, "t3"),
        }

    def test_consistent_business(self):
        business = Business(business_id=BUSINESS_ID, created_at=BASE_TIME, tasks=["t1"])
        repaired, issues = plan_business_repair(business, [_task("t1")])
        assert repaired == ["t1"]
        assert issues == []


class TestAuditAndReconcile:
    async def _drifted(self, store_group, seed_business) -> None:
        await seed_business(BUSINESS_ID)
        await seed_business(OTHER_BUSINESS_ID)
        await _insert_raw(
            store_group,
            _task("t1", minutes=1),
            _task("t2", minutes=2),
            _task("orphan", business_id="biz-gone", minutes=3),
        )
        await _set_list(store_group, BUSINESS_ID, ["t2", "ghost", "t2"])

    async def test_audit_reports_all_issue_kinds(self, consistency, store_group, seed_business):
        await self._drifted(store_group, seed_business)

        issues = await consistency.audit()
        kinds = {(i.kind, i.task_id) for i in issues}
        assert kinds == {
            (IssueKind.DANGLING, "ghost"),
            (IssueKind.DUPLICATE, "t2"),
            (IssueKind.MISSING, "t1"),
            (IssueKind.ORPHANED, "orphan"),
        }

    async def test_dry_run_does_not_write(self, consistency, store_group, seed_business):
        await self._drifted(store_group, seed_business)

        report = await consistency.reconcile(dry_run=True)
        assert report.dry_run is True
        assert report.businesses_repaired == [BUSINESS_ID]
        business = await store_group.business_store.get_business(BUSINESS_ID)
        assert business.tasks == ["t2", "ghost", "t2"]

    async def test_reconcile_repairs_and_is_idempotent(
        self, consistency, store_group, seed_business
    ):
        await self._drifted(store_group, seed_business)

        report = await consistency.reconcile()
        assert report.businesses_checked == 2
        assert report.businesses_repaired == [BUSINESS_ID]
        assert not report.is_consistent

        business = await store_group.business_store.get_business(BUSINESS_ID)
        assert business.tasks == ["t2", "t1"]
        # 孤儿任务只报告不删除
        assert await store_group.task_store.get_task("orphan") is not None

        second = await consistency.reconcile()
        assert second.businesses_repaired == []
        assert [i.kind for i in second.issues] == [IssueKind.ORPHANED]

    async def test_reconcile_single_business(self, consistency, store_group, seed_business):
        await self._drifted(store_group, seed_business)

        report = await consistency.reconcile(business_id=OTHER_BUSINESS_ID)
        assert report.businesses_checked == 1
        assert report.businesses_repaired == []
        assert report.is_consistent

    async def test_reconcile_unknown_business(self, consistency):
        with pytest.raises(BusinessNotFoundError):
            await consistency.reconcile(business_id="biz-nope")

    async def test_lifecycle_keeps_lists_consistent(self, service, new_task, store_group):
        tasks = [await new_task(name=f"t{i}") for i in range(3)]
        await service.delete_task(tasks[1].task_id)

        assert await service.consistency.audit() == []
