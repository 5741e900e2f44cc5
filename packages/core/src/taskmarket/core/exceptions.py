"""TaskMarket Core 异常体系

所有异常以结构化方式返回到 HTTP 边界，由网关映射为状态码。
除乐观并发冲突的有限重试外，不做自动重试。
"""

from typing import Any


class TaskMarketError(Exception):
    """Core 包基础异常"""

    code: str = "INTERNAL_ERROR"
    http_status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        """附加到错误响应中的结构化字段"""
        return {}


class TaskValidationError(TaskMarketError):
    """输入缺失或格式错误，调用方修正后可重试"""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, message: str, fields: list[str] | None = None) -> None:
        super().__init__(message)
        self.fields = fields or []

    def details(self) -> dict[str, Any]:
        return {"fields": self.fields} if self.fields else {}


class EmptySolutionError(TaskValidationError):
    """提交的方案为空（去除空白后）"""

    code = "EMPTY_SOLUTION"

    def __init__(self) -> None:
        super().__init__("Solution must not be empty", fields=["solution"])


class TaskNotFoundError(TaskMarketError):
    """任务不存在"""

    code = "TASK_NOT_FOUND"
    http_status = 404

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task with id {task_id} does not exist")
        self.task_id = task_id


class BusinessNotFoundError(TaskMarketError):
    """商家不存在"""

    code = "BUSINESS_NOT_FOUND"
    http_status = 404

    def __init__(self, business_id: str) -> None:
        super().__init__(f"Business with id {business_id} does not exist")
        self.business_id = business_id


class InvalidStateError(TaskMarketError):
    """当前状态不允许执行该操作"""

    code = "INVALID_STATE"
    http_status = 400

    def __init__(
        self,
        action: str,
        current: str,
        allowed: set[str] | frozenset[str] | None = None,
        message: str | None = None,
    ) -> None:
        allowed_sorted = sorted(allowed or [])
        super().__init__(
            message
            or f"Cannot {action} task in status {current}; allowed from: "
            f"{', '.join(allowed_sorted) or 'none'}"
        )
        self.action = action
        self.current = current
        self.allowed = allowed_sorted

    def details(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "current_status": self.current,
            "allowed_from": self.allowed,
        }


class InvalidTransitionError(TaskMarketError):
    """状态流转不在流转表内"""

    code = "INVALID_TRANSITION"
    http_status = 400

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot transition from {current} to {target}")
        self.current = current
        self.target = target

    def details(self) -> dict[str, Any]:
        return {"current_status": self.current, "target_status": self.target}


class UnauthenticatedError(TaskMarketError):
    """缺少可解析的 principal"""

    code = "UNAUTHENTICATED"
    http_status = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class ForbiddenError(TaskMarketError):
    """principal 不拥有该任务"""

    code = "FORBIDDEN"
    http_status = 403

    def __init__(self, message: str = "Principal does not own this task") -> None:
        super().__init__(message)


class ConcurrentModificationError(TaskMarketError):
    """乐观并发重试耗尽"""

    code = "CONCURRENT_MODIFICATION"
    http_status = 409

    def __init__(self, task_id: str, attempts: int) -> None:
        super().__init__(
            f"Task {task_id} was modified concurrently; gave up after {attempts} attempts"
        )
        self.task_id = task_id
        self.attempts = attempts


class StoreFailureError(TaskMarketError):
    """存储层意外错误，对外只暴露通用信息"""

    code = "STORE_FAILURE"
    http_status = 500

    def __init__(self, operation: str) -> None:
        super().__init__("Storage operation failed, see server logs")
        self.operation = operation
