"""TraceMiddleware -- 为任务路由绑定 task_id

/api/tasks/{task_id}[/...] 请求的日志都带上 task_id，
便于按任务串联一次请求内的所有日志。
"""

import re

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_TASK_PATH = re.compile(r"^/api/tasks/(?P<task_id>[^/]+)")

# 与 task_id 同级的集合路由
_COLLECTION_ROUTES = frozenset({"unassigned"})


def extract_task_id(path: str) -> str | None:
    """从请求路径中提取 task_id"""
    match = _TASK_PATH.match(path)
    if match is None:
        return None
    task_id = match.group("task_id")
    if task_id in _COLLECTION_ROUTES:
        return None
    return task_id


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件"""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        task_id = extract_task_id(request.url.path)
        if task_id:
            structlog.contextvars.bind_contextvars(task_id=task_id)
        return await call_next(request)
