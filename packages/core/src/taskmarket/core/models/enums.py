"""枚举定义 -- 任务状态机与事件枚举

包含 TaskStatus 状态机、LifecycleAction、ReviewAction、EventType、ActorType 枚举，
以及 VALID_TRANSITIONS 通用流转表、OPERATION_TRANSITIONS 专用操作流转表和 TERMINAL_STATES 终态集合。

两张表都在此处声明，生命周期操作只能通过 validate_transition / validate_operation 校验，
不允许在业务代码中另写流转规则。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态机"""

    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    REVIEWED = "REVIEWED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# 通用状态流转表（update_status 使用）
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.ASSIGNED},
    TaskStatus.ASSIGNED: {TaskStatus.IN_PROGRESS, TaskStatus.PENDING},
    TaskStatus.IN_PROGRESS: {TaskStatus.SUBMITTED, TaskStatus.ASSIGNED},
    TaskStatus.SUBMITTED: {TaskStatus.REVIEWED},
    TaskStatus.REVIEWED: {
        TaskStatus.APPROVED,
        TaskStatus.REJECTED,
        TaskStatus.IN_PROGRESS,
    },
    # 终态不可再流转
    TaskStatus.APPROVED: set(),
    TaskStatus.REJECTED: {TaskStatus.ASSIGNED, TaskStatus.PENDING},
}

TERMINAL_STATES: set[TaskStatus] = {TaskStatus.APPROVED}


class LifecycleAction(StrEnum):
    """专用生命周期操作"""

    ASSIGN = "assign"
    UNASSIGN = "unassign"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"


class ReviewAction(StrEnum):
    """审核动作"""

    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"


# 专用操作流转表：action -> (允许的来源状态, 目标状态)
OPERATION_TRANSITIONS: dict[LifecycleAction, tuple[frozenset[TaskStatus], TaskStatus]] = {
    LifecycleAction.ASSIGN: (
        frozenset({TaskStatus.PENDING, TaskStatus.REJECTED}),
        TaskStatus.ASSIGNED,
    ),
    LifecycleAction.UNASSIGN: (
        frozenset({TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS}),
        TaskStatus.PENDING,
    ),
    LifecycleAction.SUBMIT: (
        frozenset({TaskStatus.ASSIGNED, TaskStatus.IN_PROGRESS}),
        TaskStatus.SUBMITTED,
    ),
    LifecycleAction.APPROVE: (frozenset({TaskStatus.SUBMITTED}), TaskStatus.APPROVED),
    LifecycleAction.REJECT: (frozenset({TaskStatus.SUBMITTED}), TaskStatus.REJECTED),
    LifecycleAction.REQUEST_CHANGES: (
        frozenset({TaskStatus.SUBMITTED}),
        TaskStatus.IN_PROGRESS,
    ),
}

REVIEW_ACTIONS: dict[ReviewAction, LifecycleAction] = {
    ReviewAction.APPROVE: LifecycleAction.APPROVE,
    ReviewAction.REJECT: LifecycleAction.REJECT,
    ReviewAction.REQUEST_CHANGES: LifecycleAction.REQUEST_CHANGES,
}


class EventType(StrEnum):
    """审计事件类型"""

    TASK_CREATED = "TASK_CREATED"
    STATE_TRANSITION = "STATE_TRANSITION"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_DELETED = "TASK_DELETED"


class ActorType(StrEnum):
    """操作者类型"""

    BUSINESS = "business"
    EMPLOYEE = "employee"
    ANONYMOUS = "anonymous"
    SYSTEM = "system"


def validate_transition(from_status: str, to_status: str) -> bool:
    """验证通用状态流转是否合法

    未知的 from_status（包括任意字符串）一律返回 False。

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    try:
        current = TaskStatus(from_status)
        target = TaskStatus(to_status)
    except ValueError:
        return False
    return target in VALID_TRANSITIONS.get(current, set())


def validate_operation(action: LifecycleAction, from_status: str) -> bool:
    """验证专用操作在当前状态下是否合法"""
    try:
        current = TaskStatus(from_status)
    except ValueError:
        return False
    sources, _ = OPERATION_TRANSITIONS[action]
    return current in sources


def operation_target(action: LifecycleAction) -> TaskStatus:
    """专用操作的目标状态"""
    return OPERATION_TRANSITIONS[action][1]


def operation_only_edges() -> set[tuple[TaskStatus, TaskStatus]]:
    """专用操作允许、但通用流转表不包含的边"""
    edges: set[tuple[TaskStatus, TaskStatus]] = set()
    for sources, target in OPERATION_TRANSITIONS.values():
        for source in sources:
            if target not in VALID_TRANSITIONS[source]:
                edges.add((source, target))
    return edges
