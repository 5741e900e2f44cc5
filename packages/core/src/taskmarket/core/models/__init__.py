"""TaskMarket Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .business import Business, PrincipalLink
from .enums import (
    OPERATION_TRANSITIONS,
    REVIEW_ACTIONS,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ActorType,
    EventType,
    LifecycleAction,
    ReviewAction,
    TaskStatus,
    operation_only_edges,
    operation_target,
    validate_operation,
    validate_transition,
)
from .event import TaskEvent, status_sequence
from .payloads import (
    StateTransitionPayload,
    TaskCreatedPayload,
    TaskDeletedPayload,
    TaskUpdatedPayload,
)
from .task import Task, TaskMilestones

__all__ = [
    # 枚举
    "TaskStatus",
    "LifecycleAction",
    "ReviewAction",
    "EventType",
    "ActorType",
    # 状态机
    "VALID_TRANSITIONS",
    "OPERATION_TRANSITIONS",
    "REVIEW_ACTIONS",
    "TERMINAL_STATES",
    "validate_transition",
    "validate_operation",
    "operation_target",
    "operation_only_edges",
    # Task
    "Task",
    "TaskMilestones",
    # Business
    "Business",
    "PrincipalLink",
    # Event
    "TaskEvent",
    "status_sequence",
    # Payloads
    "TaskCreatedPayload",
    "StateTransitionPayload",
    "TaskUpdatedPayload",
    "TaskDeletedPayload",
]
