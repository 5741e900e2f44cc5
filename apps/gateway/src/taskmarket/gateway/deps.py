"""依赖注入模块 -- 通过 FastAPI Depends 注入 Store 与生命周期服务

Store 实例通过 app.state 管理，在 lifespan 中初始化/清理。
"""

from fastapi import Header, Request
from taskmarket.core.config import LifecycleConfig
from taskmarket.core.lifecycle import TaskLifecycleService
from taskmarket.core.store import StoreGroup


def get_store_group(request: Request) -> StoreGroup:
    """从 app.state 获取 StoreGroup 实例"""
    return request.app.state.store_group


def get_lifecycle_service(request: Request) -> TaskLifecycleService:
    """基于 app.state 的 StoreGroup 与配置构造生命周期服务"""
    config = getattr(request.app.state, "lifecycle_config", None) or LifecycleConfig()
    return TaskLifecycleService(request.app.state.store_group, config)


def get_principal_id(
    x_principal_id: str | None = Header(default=None, description="调用方 principal ID"),
) -> str | None:
    """从 X-Principal-Id 请求头读取 principal，空值视为未提供"""
    if x_principal_id is None or not x_principal_id.strip():
        return None
    return x_principal_id.strip()
