"""Ownership Verifier -- principal 解析与商家操作授权

未提供 principal 的调用方是否放行由 LifecycleConfig.require_authentication 决定，
默认放行（匿名调用方不受所有权检查限制）。
"""

from enum import StrEnum

import structlog

from .exceptions import ForbiddenError, UnauthenticatedError
from .models.business import PrincipalLink
from .models.task import Task
from .store.protocols import PrincipalStore

log = structlog.get_logger()


class AuthorizationDecision(StrEnum):
    """商家操作授权结果"""

    AUTHORIZED = "authorized"
    ANONYMOUS = "anonymous"
    FORBIDDEN = "forbidden"
    UNAUTHENTICATED = "unauthenticated"

    @property
    def allowed(self) -> bool:
        return self in (AuthorizationDecision.AUTHORIZED, AuthorizationDecision.ANONYMOUS)


class OwnershipVerifier:
    """解析 principal 并比对任务所属商家"""

    def __init__(self, principal_store: PrincipalStore, require_authentication: bool = False) -> None:
        self._principals = principal_store
        self._require_authentication = require_authentication

    async def resolve_principal(self, principal_id: str | None) -> PrincipalLink | None:
        """解析 principal 关联，未提供或未知时返回 None"""
        if not principal_id:
            return None
        return await self._principals.get_principal(principal_id)

    async def resolve_principal_business_id(self, principal_id: str | None) -> str | None:
        """解析 principal 所控制的商家 ID"""
        link = await self.resolve_principal(principal_id)
        return link.business_id if link else None

    async def authorize_business_action(
        self, principal_id: str | None, task: Task
    ) -> AuthorizationDecision:
        """判断 principal 是否可以以商家身份操作该任务"""
        link = await self.resolve_principal(principal_id)
        if link is None:
            if self._require_authentication:
                return AuthorizationDecision.UNAUTHENTICATED
            return AuthorizationDecision.ANONYMOUS
        if link.business_id is None:
            # 已认证但没有关联商家（例如员工）
            if self._require_authentication:
                return AuthorizationDecision.FORBIDDEN
            return AuthorizationDecision.ANONYMOUS
        if link.business_id != task.business_id:
            return AuthorizationDecision.FORBIDDEN
        return AuthorizationDecision.AUTHORIZED

    async def ensure_business_action(
        self, principal_id: str | None, task: Task, action: str
    ) -> AuthorizationDecision:
        """授权商家操作，拒绝时抛出异常

        Raises:
            UnauthenticatedError: 要求认证但 principal 不可解析
            ForbiddenError: principal 不拥有该任务
        """
        decision = await self.authorize_business_action(principal_id, task)
        if decision == AuthorizationDecision.UNAUTHENTICATED:
            raise UnauthenticatedError()
        if decision == AuthorizationDecision.FORBIDDEN:
            log.warning(
                "business_action_forbidden",
                action=action,
                task_id=task.task_id,
                principal_id=principal_id,
            )
            raise ForbiddenError()
        return decision

    async def require_business_principal(self, principal_id: str | None) -> PrincipalLink:
        """要求 principal 可解析为商家身份

        Raises:
            UnauthenticatedError: 未提供 principal 或其未关联商家
        """
        link = await self.resolve_principal(principal_id)
        if link is None or link.business_id is None:
            raise UnauthenticatedError("A principal linked to a business is required")
        return link
