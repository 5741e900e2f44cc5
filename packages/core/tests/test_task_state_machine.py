"""状态机流转单元测试

测试内容：
1. validate_transition 与流转表逐对一致
2. 终态不可再流转
3. 专用操作流转表与通用流转表的差异边
"""

import itertools

import pytest
from taskmarket.core.models.enums import (
    OPERATION_TRANSITIONS,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    LifecycleAction,
    TaskStatus,
    operation_only_edges,
    operation_target,
    validate_operation,
    validate_transition,
)

S = TaskStatus

EXPECTED_EDGES = {
    (S.PENDING, S.ASSIGNED),
    (S.ASSIGNED, S.IN_PROGRESS),
    (S.ASSIGNED, S.PENDING),
    (S.IN_PROGRESS, S.SUBMITTED),
    (S.IN_PROGRESS, S.ASSIGNED),
    (S.SUBMITTED, S.REVIEWED),
    (S.REVIEWED, S.APPROVED),
    (S.REVIEWED, S.REJECTED),
    (S.REVIEWED, S.IN_PROGRESS),
    (S.REJECTED, S.ASSIGNED),
    (S.REJECTED, S.PENDING),
}


class TestStateMachineTransitions:
    """通用流转表验证"""

    @pytest.mark.parametrize(
        "from_status,to_status", list(itertools.product(TaskStatus, TaskStatus))
    )
    def test_every_pair_matches_table(self, from_status: TaskStatus, to_status: TaskStatus):
        """全部 49 个状态对与流转表逐一一致"""
        expected = (from_status, to_status) in EXPECTED_EDGES
        assert validate_transition(from_status, to_status) is expected

    def test_table_covers_every_status(self):
        assert set(VALID_TRANSITIONS) == set(TaskStatus)

    def test_string_values_accepted(self):
        assert validate_transition("PENDING", "ASSIGNED") is True
        assert validate_transition("ASSIGNED", "APPROVED") is False

    @pytest.mark.parametrize(
        "from_status,to_status",
        [("DONE", "PENDING"), ("PENDING", "DONE"), ("", ""), ("pending", "ASSIGNED")],
    )
    def test_unknown_status_rejected(self, from_status: str, to_status: str):
        assert validate_transition(from_status, to_status) is False

    def test_terminal_states_cannot_transition(self):
        for terminal in TERMINAL_STATES:
            for target in TaskStatus:
                assert validate_transition(terminal, target) is False

    def test_no_self_transitions(self):
        for status in TaskStatus:
            assert validate_transition(status, status) is False


class TestOperationTable:
    """专用操作流转表验证"""

    @pytest.mark.parametrize(
        "action,sources,target",
        [
            (LifecycleAction.ASSIGN, {S.PENDING, S.REJECTED}, S.ASSIGNED),
            (LifecycleAction.UNASSIGN, {S.ASSIGNED, S.IN_PROGRESS}, S.PENDING),
            (LifecycleAction.SUBMIT, {S.ASSIGNED, S.IN_PROGRESS}, S.SUBMITTED),
            (LifecycleAction.APPROVE, {S.SUBMITTED}, S.APPROVED),
            (LifecycleAction.REJECT, {S.SUBMITTED}, S.REJECTED),
            (LifecycleAction.REQUEST_CHANGES, {S.SUBMITTED}, S.IN_PROGRESS),
        ],
    )
    def test_operation_sources_and_target(self, action, sources, target):
        for status in TaskStatus:
            assert validate_operation(action, status) is (status in sources)
        assert operation_target(action) == target

    def test_every_action_declared(self):
        assert set(OPERATION_TRANSITIONS) == set(LifecycleAction)

    def test_unknown_status_rejected(self):
        assert validate_operation(LifecycleAction.ASSIGN, "DONE") is False

    def test_operation_only_edges(self):
        """专用操作绕过 REVIEWED 与直接提交等边，均在此显式列出"""
        assert operation_only_edges() == {
            (S.ASSIGNED, S.SUBMITTED),
            (S.IN_PROGRESS, S.PENDING),
            (S.SUBMITTED, S.APPROVED),
            (S.SUBMITTED, S.REJECTED),
            (S.SUBMITTED, S.IN_PROGRESS),
        }
