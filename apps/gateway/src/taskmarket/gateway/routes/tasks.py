"""任务路由

查询：
  GET /api/tasks, GET /api/tasks/unassigned, GET /api/tasks/{task_id},
  GET /api/tasks/{task_id}/events
生命周期：
  POST /api/tasks, PUT .../assign/{employee_id}, PUT .../unassign,
  PUT .../status, PUT .../submit, POST .../review, PATCH, DELETE

错误由 errors.register_error_handlers 统一映射。
"""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse
from taskmarket.core.exceptions import TaskValidationError
from taskmarket.core.lifecycle import TaskLifecycleService
from taskmarket.core.models import Task, TaskStatus, status_sequence

from ..deps import get_lifecycle_service, get_principal_id

router = APIRouter()


class CreateTaskRequest(BaseModel):
    """创建任务请求体"""

    name: str = Field(description="任务名称")
    price: float = Field(description="报酬，必须大于 0")
    description: str = Field(description="任务描述")
    due_date: datetime = Field(description="截止时间，ISO 8601")
    business_id: str = Field(description="发布商家 ID")


class UpdateTaskRequest(BaseModel):
    """部分更新请求体，至少提供一个字段"""

    name: str | None = None
    description: str | None = None
    price: float | None = None
    due_date: datetime | None = None


class StatusUpdateRequest(BaseModel):
    status: str = Field(description="目标状态")
    comments: str | None = Field(default=None, description="记录在流转事件中的备注")


class SubmitSolutionRequest(BaseModel):
    solution: str = Field(description="方案内容")


class ReviewRequest(BaseModel):
    action: str = Field(description="approve / reject / request_changes")
    comments: str | None = None


def _task_data(task: Task) -> dict[str, Any]:
    return task.model_dump(mode="json")


def _mutation_response(message: str, task: Task) -> dict[str, Any]:
    return {
        "message": message,
        "task_id": task.task_id,
        "status": task.status.value,
        "task": _task_data(task),
    }


# ---- 查询 ----


@router.get("/api/tasks")
async def list_tasks(
    status: str | None = Query(default=None, description="按状态筛选"),
    business_id: str | None = Query(default=None, description="按商家筛选"),
    assigned_to: str | None = Query(default=None, description="按承接员工筛选"),
    service: TaskLifecycleService = Depends(get_lifecycle_service),
):
    """查询任务列表，筛选条件可组合"""
    wanted_status = None
    if status:
        try:
            wanted_status = TaskStatus(status)
        except ValueError as e:
            raise TaskValidationError(f"Unknown status: {status}", ["status"]) from e

    if business_id:
        tasks = await service.list_tasks_for_business(business_id)
    elif assigned_to:
        tasks = await service.list_tasks_for_employee(assigned_to)
    else:
        tasks = await service.list_tasks(status)

    if wanted_status is not None:
        tasks = [t for t in tasks if t.status == wanted_status]
    if assigned_to:
        tasks = [t for t in tasks if t.assigned_to == assigned_to]

    return {"tasks": [_task_data(t) for t in tasks]}


@router.get("/api/tasks/unassigned")
async def list_unassigned_tasks(
    service: TaskLifecycleService = Depends(get_lifecycle_service),
):
    """查询尚未指派的任务"""
    tasks = await service.list_unassigned_tasks()
    return {"tasks": [_task_data(t) for t in tasks]}


@router.get("/api/tasks/{task_id}")
async def get_task(
    task_id: str,
    service: TaskLifecycleService = Depends(get_lifecycle_service),
):
    task = await service.get_task(task_id)
    return {"task": _task_data(task)}


@router.get("/api/tasks/{task_id}/events")
async def get_task_events(
    task_id: str,
    event_type: str | None = Query(default=None, alias="type", description="按事件类型筛选"),
    service: TaskLifecycleService = Depends(get_lifecycle_service),
):
    """查询任务审计事件（任务删除后仍可查询）及还原出的状态序列"""
    events = await service.get_task_history(task_id, event_type)
    return {
        "events": [e.model_dump(mode="json") for e in events],
        "status_sequence": [s.value for s in status_sequence(events)],
    }


# ---- 创建 / 删除 ----


@router.post("/api/tasks", status_code=201)
async def create_task(
    body: CreateTaskRequest,
    service: TaskLifecycleService = Depends(get_lifecycle_service),
    principal_id: str | None = Depends(get_principal_id),
):
    """创建任务 -- 201 Created"""
    task = await service.create_task(
        name=body.name,
        price=body.price,
        description=body.description,
        due_date=body.due_date,
        business_id=body.business_id,
        principal_id=principal_id,
    )
    return JSONResponse(
        status_code=201,
        content={
            "task_id": task.task_id,
            "status": task.status.value,
            "task": _task_data(task),
        },
    )


@router.delete("/api/tasks/{task_id}")
async def delete_task(
    task_id: str,
    service: TaskLifecycleService = Depends(get_lifecycle_service),
    principal_id: str | None = Depends(get_principal_id),
):
    await service.delete_task(task_id, principal_id)
    return {"message": "Task deleted successfully", "task_id": task_id}


# ---- 生命周期 ----


@router.put("/api/tasks/{task_id}/assign/{employee_id}")
async def assign_task(
    task_id: str,
    employee_id: str,
    service: TaskLifecycleService = Depends(get_lifecycle_service),
    principal_id: str | None = Depends(get_principal_id),
):
    task = await service.assign_task(task_id, employee_id, principal_id)
    return _mutation_response("Task assigned successfully", task)


@router.put("/api/tasks/{task_id}/unassign")
async def unassign_task(
    task_id: str,
    service: TaskLifecycleService = Depends(get_lifecycle_service),
    principal_id: str | None = Depends(get_principal_id),
):
    task = await service.unassign_task(task_id, principal_id)
    return _mutation_response("Task unassigned successfully", task)


@router.put("/api/tasks/{task_id}/status")
async def update_status(
    task_id: str,
    body: StatusUpdateRequest,
    service: TaskLifecycleService = Depends(get_lifecycle_service),
    principal_id: str | None = Depends(get_principal_id),
):
    task = await service.update_status(task_id, body.status, body.comments, principal_id)
    return _mutation_response("Task status updated successfully", task)


@router.put("/api/tasks/{task_id}/submit")
async def submit_solution(
    task_id: str,
    body: SubmitSolutionRequest,
    service: TaskLifecycleService = Depends(get_lifecycle_service),
    principal_id: str | None = Depends(get_principal_id),
):
    task = await service.submit_solution(task_id, body.solution, principal_id)
    return _mutation_response("Solution submitted successfully", task)


@router.post("/api/tasks/{task_id}/review")
async def review_task(
    task_id: str,
    body: ReviewRequest,
    service: TaskLifecycleService = Depends(get_lifecycle_service),
    principal_id: str | None = Depends(get_principal_id),
):
    task = await service.review_task(task_id, principal_id, body.action, body.comments)
    return _mutation_response("Task reviewed successfully", task)


@router.patch("/api/tasks/{task_id}")
async def update_task(
    task_id: str,
    body: UpdateTaskRequest,
    service: TaskLifecycleService = Depends(get_lifecycle_service),
    principal_id: str | None = Depends(get_principal_id),
):
    task = await service.update_task(
        task_id,
        principal_id,
        name=body.name,
        description=body.description,
        price=body.price,
        due_date=body.due_date,
    )
    return _mutation_response("Task updated successfully", task)
