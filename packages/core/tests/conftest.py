"""packages/core 测试配置 -- 生命周期服务与任务构造 fixture"""

from datetime import UTC, datetime, timedelta

import pytest_asyncio

BUSINESS_ID = "biz-acme"
OWNER_UID = "uid-acme-owner"
OTHER_BUSINESS_ID = "biz-globex"
OTHER_OWNER_UID = "uid-globex-owner"
EMPLOYEE_ID = "emp-1"


@pytest_asyncio.fixture
async def businesses(seed_business):
    """两个商家：acme（任务所属）与 globex（无关商家）"""
    await seed_business(BUSINESS_ID, OWNER_UID)
    await seed_business(OTHER_BUSINESS_ID, OTHER_OWNER_UID)


@pytest_asyncio.fixture
async def service(store_group, businesses):
    """默认配置的生命周期服务"""
    from taskmarket.core.lifecycle import TaskLifecycleService

    return TaskLifecycleService(store_group)


@pytest_asyncio.fixture
async def new_task(service):
    """创建任务的工厂"""

    async def _create(name: str = "Logo design", price: float = 120.0, **overrides):
        fields = {
            "name": name,
            "price": price,
            "description": "Design a logo for the spring campaign",
            "due_date": datetime.now(UTC) + timedelta(days=7),
            "business_id": BUSINESS_ID,
            "principal_id": OWNER_UID,
            **overrides,
        }
        return await service.create_task(**fields)

    return _create


@pytest_asyncio.fixture
async def task_in(service, new_task):
    """通过合法操作把新任务推进到指定状态"""
    from taskmarket.core.models import TaskStatus

    async def _drive(status: TaskStatus):
        task = await new_task()
        if status == TaskStatus.PENDING:
            return task
        task = await service.assign_task(task.task_id, EMPLOYEE_ID)
        if status == TaskStatus.ASSIGNED:
            return task
        if status == TaskStatus.IN_PROGRESS:
            return await service.update_status(task.task_id, TaskStatus.IN_PROGRESS)
        task = await service.submit_solution(task.task_id, "Here is the logo")
        if status == TaskStatus.SUBMITTED:
            return task
        if status == TaskStatus.REVIEWED:
            return await service.update_status(task.task_id, TaskStatus.REVIEWED)
        if status == TaskStatus.APPROVED:
            return await service.review_task(task.task_id, OWNER_UID, "approve")
        if status == TaskStatus.REJECTED:
            return await service.review_task(task.task_id, OWNER_UID, "reject")
        raise AssertionError(f"unsupported status {status}")

    return _drive
